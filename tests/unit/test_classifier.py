"""Unit tests for discovery classification rules."""

import pytest

from fleetsync.discovery.classifier import (
    RESOURCE_TYPE_MAPPINGS,
    EntityRole,
    classify_image,
    derive_deployment_name,
    derive_display_name,
    derive_process_name,
    get_resource_mapping,
    image_tag,
    resource_display_name,
    service_label,
    suggest_group,
)

REGISTRIES = ["registry.internal/", "ghcr.io/acme/"]


@pytest.mark.unit
class TestImageClassification:
    """Test cases for image based role classification."""

    @pytest.mark.parametrize(
        "image",
        ["registry.internal/shop/api:1.4.2", "ghcr.io/acme/worker@sha256:abc"],
    )
    def test_private_registry_is_instance(self, image):
        assert classify_image(image, REGISTRIES) == EntityRole.INSTANCE

    @pytest.mark.parametrize(
        "image",
        ["redis:7.2", "docker.io/library/nginx", "ghcr.io/other/tool:1"],
    )
    def test_public_image_is_service(self, image):
        assert classify_image(image, REGISTRIES) == EntityRole.SERVICE

    def test_no_registries_means_everything_is_a_service(self):
        assert classify_image("registry.internal/shop/api:1", []) == EntityRole.SERVICE

    def test_empty_registry_prefix_is_ignored(self):
        assert classify_image("redis:7", [""]) == EntityRole.SERVICE

    @pytest.mark.parametrize(
        ("image", "expected"),
        [
            ("redis:7.2", "redis"),
            ("quay.io/prometheus/prometheus:v2.45", "prometheus"),
            ("registry:5000/app:1.0", "app"),
            ("postgres@sha256:deadbeef", "postgres"),
            ("nginx", "nginx"),
        ],
    )
    def test_process_name(self, image, expected):
        assert derive_process_name(image) == expected

    def test_image_tag(self):
        assert image_tag("redis:7.2") == "7.2"
        assert image_tag("registry:5000/app") is None
        assert image_tag("nginx") is None


@pytest.mark.unit
class TestNameDerivation:
    """Test cases for workload display names."""

    def test_replicaset_hash_is_stripped(self):
        assert derive_deployment_name([{"kind": "ReplicaSet", "name": "foo-7f8b9c"}]) == "foo"

    def test_hyphenated_deployment_keeps_its_name(self):
        owners = [{"kind": "ReplicaSet", "name": "checkout-api-5d9f7c6b8"}]
        assert derive_deployment_name(owners) == "checkout-api"

    @pytest.mark.parametrize("kind", ["StatefulSet", "DaemonSet"])
    def test_direct_controllers_are_used_verbatim(self, kind):
        assert derive_deployment_name([{"kind": kind, "name": "redis-master"}]) == "redis-master"

    def test_unusable_owners(self):
        assert derive_deployment_name(None) is None
        assert derive_deployment_name([{"kind": "Job", "name": "migrate-123"}]) is None
        assert derive_deployment_name([{"kind": "ReplicaSet", "name": "web"}]) is None

    def test_display_name_falls_back_to_pod_name(self):
        pod = {"metadata": {"name": "standalone"}}
        assert derive_display_name(pod) == "standalone"

    def test_display_name_uses_owner(self):
        pod = {
            "metadata": {
                "name": "web-7f8b9c-x2x4z",
                "ownerReferences": [{"kind": "ReplicaSet", "name": "web-7f8b9c"}],
            }
        }
        assert derive_display_name(pod) == "web"


@pytest.mark.unit
class TestResourceMapping:
    """Test cases for the resource type table."""

    def test_table_covers_known_types(self):
        assert set(RESOURCE_TYPE_MAPPINGS) == {
            "aws_db_instance",
            "aws_rds_cluster",
            "aws_elasticache_cluster",
            "aws_elasticache_replication_group",
            "aws_mq_broker",
            "aws_opensearch_domain",
            "aws_elasticsearch_domain",
            "aws_instance",
        }
        assert get_resource_mapping("aws_s3_bucket") is None

    def test_only_instances_are_hosts(self):
        hosts = {name for name, m in RESOURCE_TYPE_MAPPINGS.items() if m.role == EntityRole.HOST}
        assert hosts == {"aws_instance"}

    @pytest.mark.parametrize(
        ("engine", "expected"),
        [
            ("mysql", "mysql"),
            ("mariadb", "mysql"),
            ("aurora-mysql", "mysql"),
            ("postgres", "postgresql"),
            ("aurora-postgresql", "postgresql"),
            ("oracle-ee", "oracle-ee"),
            (None, "database"),
        ],
    )
    def test_database_label_follows_engine(self, engine, expected):
        attrs = {"engine": engine} if engine else {}
        assert service_label("aws_db_instance", attrs) == expected

    def test_fixed_labels(self):
        assert service_label("aws_rds_cluster", {"engine": "aurora-mysql"}) == "aurora"
        assert service_label("aws_elasticache_cluster", {}) == "redis"
        assert service_label("aws_s3_bucket", {}) == "unknown"

    def test_endpoint_and_port_extractors(self):
        db = get_resource_mapping("aws_db_instance")
        assert db.endpoint({"endpoint": "db.example:5432", "port": 5432}) == "db.example:5432"
        assert db.port({"port": "5432"}) == 5432
        assert db.endpoint({}) is None
        assert db.port({}) is None

        cache = get_resource_mapping("aws_elasticache_cluster")
        attrs = {"cache_nodes": [{"address": "c1.cache.amazonaws.com"}], "port": 6379}
        assert cache.endpoint(attrs) == "c1.cache.amazonaws.com"
        assert cache.endpoint({"cache_nodes": []}) is None

        broker = get_resource_mapping("aws_mq_broker")
        attrs = {"instances": [{"endpoints": ["amqps://b-1.mq.amazonaws.com:5671"]}]}
        assert broker.endpoint(attrs) == "amqps://b-1.mq.amazonaws.com:5671"
        assert broker.port({}) == 5672

        search = get_resource_mapping("aws_opensearch_domain")
        assert search.port({}) == 443

        instance = get_resource_mapping("aws_instance")
        assert instance.endpoint({"public_ip": "54.1.2.3", "private_ip": "10.0.0.9"}) == "54.1.2.3"
        assert instance.endpoint({"public_ip": "", "private_ip": "10.0.0.9"}) == "10.0.0.9"
        assert instance.endpoint({}) is None
        assert instance.port({}) == 22

    def test_display_name_precedence(self):
        assert resource_display_name("main", {"identifier": "shop-db", "tags": {"Name": "x"}}) == "shop-db"
        assert resource_display_name("main", {"tags": {"Name": "shop-cache"}}) == "shop-cache"
        assert resource_display_name("main", {"tags": None}) == "main"


@pytest.mark.unit
class TestGroupSuggestion:
    """Test cases for group suggestions."""

    def test_environment_tag_matches_existing_group(self):
        attrs = {"tags": {"Environment": "Staging"}}
        assert suggest_group("db", attrs, ["production", "Staging"]) == "Staging"

    def test_environment_tag_without_group_falls_through_to_keywords(self):
        attrs = {"tags": {"env": "qa"}}
        assert suggest_group("prod-db", attrs, ["production"]) == "production"

    def test_keyword_in_identifier(self):
        attrs = {"identifier": "shop-stage-db"}
        assert suggest_group("main", attrs, ["production", "staging"]) == "staging"

    def test_keyword_matches_group_variant(self):
        assert suggest_group("dev_cache", {}, ["develop-eu"]) == "develop-eu"

    @pytest.mark.parametrize("name", ["proddb", "myapp-prod1", "product-db"])
    def test_keywords_match_inside_names(self, name):
        assert suggest_group(name, {}, ["staging", "production"]) == "production"

    def test_keyword_inside_identifier(self):
        attrs = {"identifier": "webstaging"}
        assert suggest_group("cache", attrs, ["production", "staging"]) == "staging"

    def test_keyword_inside_group_name(self):
        assert suggest_group("prod-db", {}, ["dev", "production2"]) == "production2"

    def test_first_environment_named_wins(self):
        # "prod" comes before "test", and no production group exists
        assert suggest_group("prod-test-db", {}, ["testing"]) is None

    def test_no_matching_group(self):
        assert suggest_group("prod-db", {}, []) is None
        assert suggest_group("main", {"identifier": "orders"}, ["staging"]) is None
