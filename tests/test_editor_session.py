"""Tests for EditorSession, the host-facing editing contract."""

import io
import pickle
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import pytest
from PIL import Image

from post_image_editor.compositor import Compositor
from post_image_editor.editor import EditorSession
from post_image_editor.errors import EmptyCropError, EncodeFailedError, SessionClosedError
from post_image_editor.image_io import load_resource
from post_image_editor.models import (
    CompletedCrop, EditorConfig, ImageResource, OutputOptions, PercentCrop,
)
from post_image_editor.worker import RenderJob, render_job


class ImmediateExecutor(Executor):
    """Runs each job synchronously inside ``submit``."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Queues jobs until ``run_all`` is called, so tests control completion."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def start_all(self):
        for future, *_ in self.jobs:
            future.set_running_or_notify_cancel()

    def run_all(self):
        for future, fn, args, kwargs in self.jobs:
            if future.cancelled():
                continue
            if future.running() or future.set_running_or_notify_cancel():
                future.set_result(fn(*args, **kwargs))
        self.jobs.clear()


@pytest.fixture
def saved():
    return []


@pytest.fixture
def session(photo_resource, saved):
    s = EditorSession(photo_resource, on_save=saved.append)
    s.on_image_displayed(500, 400)
    return s


def _decode(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


# --- Completing crops ---

def test_save_disabled_until_crop_completes(session, saved):
    assert session.state.crop is not None
    assert session.completed_crop is None
    assert not session.can_save
    with pytest.raises(EmptyCropError):
        session.on_save()
    assert saved == []
    assert not session.is_closed


def test_aspect_select_completes_the_crop(session):
    assert session.on_aspect_select(1.0) is True
    assert session.completed_crop == CompletedCrop(140, 40, 720, 720)
    assert session.can_save


def test_invalid_aspect_select_is_rejected(session):
    session.on_aspect_select(1.0)
    before = session.completed_crop
    assert session.on_aspect_select(0) is False
    assert session.completed_crop == before
    assert session.state.aspect == 1.0


def test_drag_updates_do_not_recompute_completed_crop(session):
    session.on_crop_complete()
    completed = session.completed_crop

    applied = session.on_crop_change(PercentCrop(0, 0, 50, 50))
    assert applied == PercentCrop(0.0, 0.0, 50.0, 50.0)
    assert session.state.is_dragging
    assert session.completed_crop == completed

    session.on_crop_complete(PercentCrop(0, 0, 50, 50))
    assert not session.state.is_dragging
    assert session.completed_crop == CompletedCrop(0, 0, 500, 400)


def test_crop_change_is_clamped(session):
    applied = session.on_crop_change(PercentCrop(80, 80, 50, 50))
    assert applied.x + applied.width <= 100 + 1e-9
    assert applied.y + applied.height <= 100 + 1e-9


def test_reset_disables_save(session):
    session.on_aspect_select(1.0)
    session.on_rotate()
    session.on_reset()
    assert session.completed_crop is None
    assert not session.can_save
    assert session.state.transform.is_identity
    assert session.state.crop is None


def test_flip_axis_is_checked(session):
    session.on_flip("h")
    session.on_flip("v")
    t = session.state.transform
    assert t.flip_horizontal and t.flip_vertical
    with pytest.raises(ValueError):
        session.on_flip("x")


def test_scale_is_clamped(session):
    assert session.on_scale(100) == pytest.approx(3.0)


# --- Saving ---

def test_save_delivers_result_and_closes(session, saved):
    session.on_aspect_select(1.0)
    session.on_rotate(90)
    result = session.on_save()

    assert saved == [result]
    assert result.mime_type == "image/png"
    assert result.crop == CompletedCrop(140, 40, 720, 720)
    assert _decode(result.data).size == (720, 720)
    assert session.is_closed
    assert not session.can_save


def test_result_as_data_url(session):
    session.on_aspect_select(1.0)
    result = session.on_save()
    url = result.to_data_url()
    assert url.startswith("data:image/png;base64,")
    assert load_resource(url).natural_size == (720, 720)


def test_closed_session_rejects_gestures(session):
    session.on_aspect_select(1.0)
    session.on_save()
    with pytest.raises(SessionClosedError):
        session.on_rotate()
    with pytest.raises(SessionClosedError):
        session.on_save()
    assert session.on_crop_change(PercentCrop(0, 0, 50, 50)) is None


def test_failed_save_keeps_session(photo_resource, saved):
    bad = Compositor(output=OutputOptions(format="TIFF"))
    s = EditorSession(photo_resource, on_save=saved.append, compositor=bad)
    s.on_image_displayed(500, 400)
    s.on_aspect_select(1.0)
    with pytest.raises(EncodeFailedError):
        s.on_save()
    assert not s.is_closed
    assert s.can_save
    assert saved == []


def test_jpeg_output_config(photo_resource, saved):
    config = EditorConfig(output=OutputOptions(format="JPEG"))
    s = EditorSession(photo_resource, config=config, on_save=saved.append)
    s.on_image_displayed(500, 400)
    s.on_aspect_select(16 / 9)
    result = s.on_save()
    assert result.mime_type == "image/jpeg"
    assert result.suggested_filename("photo.png") == "photo-edited.jpg"


# --- Download ---

def test_download_writes_unique_files(session, saved, tmp_path):
    session.on_aspect_select(1.0)
    first = session.on_download(tmp_path)
    second = session.on_download(tmp_path)

    assert first.name == "photo-edited.png"
    assert second.name == "photo-edited-01.png"
    assert _decode(first.read_bytes()).size == (720, 720)
    assert not session.is_closed
    assert saved == []


def test_download_requires_completed_crop(session, tmp_path):
    with pytest.raises(EmptyCropError):
        session.on_download(tmp_path)
    assert list(tmp_path.iterdir()) == []


# --- Background saves ---

def test_submit_save_delivers_through_callback(session, saved):
    session.on_aspect_select(4 / 5)
    future = session.submit_save(ImmediateExecutor())
    assert future.done()
    assert saved == [future.result()]
    assert session.is_closed


def test_submit_save_requires_completed_crop(session):
    with pytest.raises(EmptyCropError):
        session.submit_save(ImmediateExecutor())


def test_pending_save_is_reused(session):
    session.on_aspect_select(1.0)
    executor = DeferredExecutor()
    first = session.submit_save(executor)
    assert session.submit_save(executor) is first
    assert len(executor.jobs) == 1


def test_cancel_before_render_starts(session, saved):
    session.on_aspect_select(1.0)
    executor = DeferredExecutor()
    future = session.submit_save(executor)
    session.on_cancel()
    executor.run_all()

    assert future.cancelled()
    assert saved == []
    assert session.is_closed


def test_cancel_discards_render_in_flight(session, saved):
    session.on_aspect_select(1.0)
    executor = DeferredExecutor()
    future = session.submit_save(executor)
    executor.start_all()
    session.on_cancel()
    executor.run_all()

    assert future.done() and not future.cancelled()
    assert saved == []


def test_cancel_after_delivery_is_a_no_op(session, saved):
    session.on_aspect_select(1.0)
    session.submit_save(ImmediateExecutor())
    session.on_cancel()
    assert len(saved) == 1
    assert session.is_closed
    assert not session.was_cancelled


def test_cancel_marks_session_cancelled(session, saved):
    session.on_cancel()
    assert session.is_closed
    assert session.was_cancelled


def test_cancel_racing_a_background_save():
    image = ImageResource(100, 80, bitmap=Image.new("RGB", (100, 80)), name="small")
    runs = []
    with ThreadPoolExecutor(max_workers=2) as executor:
        for _ in range(25):
            saved = []
            s = EditorSession(image, on_save=saved.append)
            s.on_image_displayed(100, 80)
            s.on_crop_complete()
            s.submit_save(executor)
            s.on_cancel()
            runs.append((s, saved))
    # Leaving the block joins the workers, so every done-callback has run.
    outcomes = [(len(saved), s.was_cancelled) for s, saved in runs]
    # Exactly one of delivery or cancellation wins each time.
    assert all(outcome in ((1, False), (0, True)) for outcome in outcomes)


def test_background_render_failure_keeps_session(saved):
    ghost = ImageResource(1000, 800, name="ghost")
    s = EditorSession(ghost, on_save=saved.append)
    s.on_image_displayed(500, 400)
    s.on_crop_complete()
    future = s.submit_save(ImmediateExecutor())
    assert future.exception() is not None
    assert not s.is_closed
    assert saved == []


def test_render_job_pickles(session):
    session.on_aspect_select(1.0)
    job = RenderJob(
        image=session.image,
        crop=session.completed_crop,
        transform=session.state.transform,
        output=session.config.output,
    )
    restored = pickle.loads(pickle.dumps(job))
    result = render_job(restored)
    assert result.crop == CompletedCrop(140, 40, 720, 720)


# --- Summary ---

def test_crop_summary(session):
    assert session.crop_summary() == ""
    session.on_aspect_select(1.0)
    assert session.crop_summary() == "720 × 720px · Aspect: 1.00"


def test_crop_summary_free_form(session):
    session.on_crop_complete()
    assert session.crop_summary() == "900 × 720px · Aspect: Free"
