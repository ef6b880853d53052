from .base_worker import BaseWorker
from .pipeline_worker import PipelineWorker

__all__ = ["BaseWorker", "PipelineWorker"]
