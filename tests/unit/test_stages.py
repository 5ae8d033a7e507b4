"""
Unit tests for the stage pipeline and stage functions
"""

import pytest
from types import MappingProxyType
from core.exceptions import ConfigurationError, RecordValidationError, StageError, TransientSourceError
from migration.stages import enrichers, filters, transformers
from migration.stages.builder import build_pipeline, build_stage
from migration.stages.pipeline import StagePipeline, named


RECORD = MappingProxyType({"id": 1, "status": "ACTIVE", "name": " ada ", "country": "uk"})


class TestFilters:
    """Filter stages keep or drop records"""

    def test_field_in_keeps_matching(self):
        stage = filters.field_in("status", ["ACTIVE"])
        assert stage(RECORD) is RECORD

    def test_field_in_drops_other_values(self):
        stage = filters.field_in("status", ["INACTIVE"])
        assert stage(RECORD) is None

    def test_field_not_in(self):
        assert filters.field_not_in("country", ["uk"])(RECORD) is None
        assert filters.field_not_in("country", ["us"])(RECORD) is RECORD

    def test_not_null(self):
        assert filters.not_null("email")(RECORD) is None
        assert filters.not_null("name")(RECORD) is RECORD

    def test_where_predicate(self):
        stage = filters.where(lambda r: r["id"] > 0, name="positive_id")
        assert stage(RECORD) is RECORD
        assert stage.stage_name == "positive_id"


class TestTransformers:
    """Transform stages return changed copies"""

    def test_rename_keeps_field_order(self):
        result = transformers.rename({"name": "full_name"})(RECORD)
        assert list(result) == ["id", "status", "full_name", "country"]

    def test_select_orders_fields(self):
        result = transformers.select(["name", "id"])(RECORD)
        assert list(result) == ["name", "id"]

    def test_uppercase_and_strip(self):
        pipeline = StagePipeline([transformers.strip("name"), transformers.uppercase("name")])
        assert pipeline.apply(RECORD)["name"] == "ADA"

    def test_map_field_leaves_none_alone(self):
        stage = transformers.map_field("missing", lambda v: v * 2)
        assert stage(RECORD) is RECORD

    def test_require_raises_validation_error(self):
        stage = transformers.require("id", "email")
        with pytest.raises(RecordValidationError) as exc_info:
            stage(RECORD)
        assert "email" in exc_info.value.message

    def test_validate_predicate(self):
        stage = transformers.validate(lambda r: r["country"] != "uk", "UK records are not migrated")
        with pytest.raises(RecordValidationError):
            stage(RECORD)

    def test_transform_does_not_mutate_input(self):
        transformers.uppercase("country")(RECORD)
        assert RECORD["country"] == "uk"


class TestEnrichers:
    """Enrichment stages add fields"""

    def test_constant(self):
        assert enrichers.constant("source_system", "legacy")(RECORD)["source_system"] == "legacy"

    def test_copy_field(self):
        assert enrichers.copy_field("id", "legacy_id")(RECORD)["legacy_id"] == 1

    def test_concat_skips_none(self):
        record = {"first": "Ada", "middle": None, "last": "Lovelace"}
        assert enrichers.concat("full", ["first", "middle", "last"])(record)["full"] == "Ada Lovelace"

    def test_lookup_with_default(self):
        stage = enrichers.lookup("country", "region", {"uk": "EMEA"}, default="OTHER")
        assert stage(RECORD)["region"] == "EMEA"
        assert stage({"country": "br"})["region"] == "OTHER"


class TestStagePipeline:
    """Composition, short-circuiting and error classification"""

    def test_stages_run_left_to_right(self):
        pipeline = StagePipeline([
            enrichers.constant("step", "first"),
            enrichers.derive("step", lambda r: r["step"] + ",second"),
        ])
        assert pipeline.apply(RECORD)["step"] == "first,second"

    def test_none_short_circuits_remaining_stages(self):
        calls = []

        @named("spy")
        def spy(record):
            calls.append(record)
            return record

        pipeline = StagePipeline([filters.field_in("status", ["INACTIVE"]), spy])
        assert pipeline.apply(RECORD) is None
        assert calls == []

    def test_outputs_are_frozen(self):
        result = StagePipeline([enrichers.constant("x", 1)]).apply({"id": 1})
        with pytest.raises(TypeError):
            result["x"] = 2

    def test_unexpected_exception_becomes_stage_error(self):
        @named("explode")
        def explode(record):
            raise ValueError("boom")

        with pytest.raises(StageError) as exc_info:
            StagePipeline([explode]).apply(RECORD)
        assert exc_info.value.context["stage"] == "explode"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_migration_errors_pass_through(self):
        @named("flaky_lookup")
        def flaky(record):
            raise TransientSourceError("lookup timed out")

        with pytest.raises(TransientSourceError):
            StagePipeline([flaky]).apply(RECORD)

    def test_empty_pipeline_returns_record(self):
        assert dict(StagePipeline().apply(RECORD)) == dict(RECORD)

    def test_names(self):
        pipeline = StagePipeline([filters.not_null("id"), transformers.uppercase("name")])
        assert pipeline.names() == ["not_null(id)", "uppercase(name)"]
        assert len(pipeline) == 2


class TestBuilder:
    """Declarative stage specs"""

    def test_build_pipeline_from_specs(self):
        pipeline = build_pipeline([
            {"type": "filter", "field": "status", "in": ["ACTIVE"]},
            {"type": "uppercase", "field": "country"},
            {"type": "constant", "field": "source_system", "value": "legacy"},
        ])
        result = pipeline.apply(RECORD)
        assert result["country"] == "UK"
        assert result["source_system"] == "legacy"

    def test_code_stages_run_after_declarative_ones(self):
        pipeline = build_pipeline(
            [{"type": "constant", "field": "tag", "value": "a"}],
            extra=[enrichers.derive("tag", lambda r: r["tag"] + "b")],
        )
        assert pipeline.apply(RECORD)["tag"] == "ab"

    def test_unknown_stage_type(self):
        with pytest.raises(ConfigurationError):
            build_stage({"type": "teleport"})

    def test_missing_stage_option(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_stage({"type": "filter", "field": "status"})
        assert isinstance(exc_info.value.__cause__, KeyError)
