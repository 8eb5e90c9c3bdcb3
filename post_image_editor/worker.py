"""
Render job for off-thread / off-process export (Qt-free).

``render_job`` may run in a ``ThreadPoolExecutor`` or in a child process
spawned by ``concurrent.futures.ProcessPoolExecutor``.  It must **never**
import PyQt6, since a Qt import in a worker process can crash or hang it.  Jobs and
results are plain dataclasses so they pickle cleanly.
"""

from dataclasses import dataclass

from post_image_editor.compositor import Compositor
from post_image_editor.models import (
    CompletedCrop, EditResult, ImageResource, OutputOptions, TransformParams,
)


@dataclass(frozen=True)
class RenderJob:
    """Everything needed to render one edit result."""
    image: ImageResource
    crop: CompletedCrop
    transform: TransformParams
    output: OutputOptions


def render_job(job: RenderJob) -> EditResult:
    """Render *job* and wrap it as an ``EditResult``. Compositor errors propagate."""
    rendered = Compositor(output=job.output).render(job.image, job.crop, job.transform)
    return EditResult(data=rendered.data, mime_type=rendered.mime_type, crop=job.crop)
