"""Long-running pipeline: shared scanners plus the periodic job scheduler.

Usage:
    prescience serve

Or in code:
    from prescience.agent import pipeline_lifespan
    async with pipeline_lifespan(settings) as pipeline:
        await run_publish(pipeline, dry_run=True)
"""

from prescience.agent.pipeline import (
    Pipeline,
    build_pipeline,
    pipeline_lifespan,
    run_publish,
)

__all__ = ["Pipeline", "build_pipeline", "pipeline_lifespan", "run_publish"]
