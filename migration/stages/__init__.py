from migration.stages.pipeline import Stage, StagePipeline, named

__all__ = ["Stage", "StagePipeline", "named"]
