"""
Tests for the editing session state machine: bootstrap, upload, edit, undo,
rollback and list, driven through SessionController with a stub provider.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.application.session_controller import SessionController
from src.domain.errors import (
    AlreadyAtOriginalError,
    EmptyPromptError,
    ImageTooLargeError,
    InvalidVersionError,
    MissingBaseError,
    NoFileError,
    NoImageReturned,
    NothingToUndoError,
    ProviderError,
    StorageError,
    UploadError,
)
from src.domain.services.transform_gateway import GeneratedImage, SourceImage
from src.infrastructure.storage.version_store import FileVersionStore

SID = "sess01"


class StubGateway:
    def __init__(self, make_png, error=None, delay=0.0):
        self.make_png = make_png
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, SourceImage | None]] = []
        self._lock = threading.Lock()

    def generate(self, prompt, base_image=None):
        with self._lock:
            self.calls.append((prompt, base_image))
            n = len(self.calls)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GeneratedImage(
            data=self.make_png(color=(n % 256, 10, 20)),
            mime_type="image/png",
            usage={"totalTokenCount": 42},
        )


@pytest.fixture()
def store(tmp_path):
    return FileVersionStore(tmp_path, "photo_editor", "/media")


@pytest.fixture()
def gateway(make_png):
    return StubGateway(make_png)


@pytest.fixture()
def controller(store, gateway):
    return SessionController(store=store, gateway=gateway)


@pytest.fixture()
def seeded(controller, make_png):
    """Scenario A: an empty session bootstrapped with seed bytes."""
    history = controller.bootstrap(SID, SourceImage(make_png(), "image/png"))
    return history.versions[0].path


class TestBootstrap:
    def test_scenario_a_creates_single_original(self, controller, store, seeded):
        history = store.load(SID)
        assert len(history.versions) == 1
        original = history.versions[0]
        assert original.kind.value == "original"
        assert original.base is None
        assert original.prompt is None
        assert history.current_base_path == seeded
        assert history.original_path == seeded
        assert store.exists(seeded)

    def test_bootstrap_is_idempotent(self, controller, store, seeded, make_png):
        calls = []

        def loader():
            calls.append(1)
            return SourceImage(make_png(color=(9, 9, 9)), "image/png")

        controller.bootstrap(SID, loader)
        assert calls == []
        assert [v.path for v in store.load(SID).versions] == [seeded]

    def test_concurrent_bootstraps_create_one_original(self, controller, store, make_png):
        seed = SourceImage(make_png(), "image/png")
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: controller.bootstrap("race", seed), range(4)))
        assert len(store.load("race").versions) == 1


class TestEdit:
    def test_scenario_b_edit_appends_and_advances(self, controller, store, gateway, seeded):
        response = controller.edit(SID, "add glow")
        history = store.load(SID)
        assert len(history.versions) == 2
        new, original = history.versions
        assert new.kind.value == "edit"
        assert new.prompt == "add glow"
        assert new.base == seeded
        assert new.usage == {"totalTokenCount": 42}
        assert original.path == seeded
        assert history.current_base_path == new.path
        assert response.version.path == new.path
        assert [v.path for v in response.all] == [new.path, seeded]
        assert response.current_base == new.path
        # the provider saw the base image bytes
        prompt, base_image = gateway.calls[0]
        assert prompt == "add glow"
        assert base_image.mime_type == "image/png"
        assert base_image.data == store.read_image(seeded)[0]

    def test_edit_builds_on_previous_edit(self, controller, store, seeded):
        first = controller.edit(SID, "add glow").version.path
        second = controller.edit(SID, "make it blue").version
        assert second.base == first
        assert store.load(SID).current_base_path == second.path

    def test_prompt_is_trimmed(self, controller, seeded):
        assert controller.edit(SID, "  add glow \n").version.prompt == "add glow"

    @pytest.mark.parametrize("prompt", ["", "   ", None])
    def test_scenario_e_empty_prompt(self, controller, store, gateway, seeded, prompt):
        before = store.load(SID)
        with pytest.raises(EmptyPromptError):
            controller.edit(SID, prompt)
        after = store.load(SID)
        assert after.versions == before.versions
        assert after.current_base_path == before.current_base_path
        assert gateway.calls == []

    @pytest.mark.parametrize(
        "error",
        [ProviderError(500, "internal"), NoImageReturned('{"candidates": []}')],
    )
    def test_scenario_f_provider_error_leaves_history(self, store, make_png, seeded, error):
        controller = SessionController(store=store, gateway=StubGateway(make_png, error=error))
        before = store.load(SID)
        with pytest.raises(type(error)) as exc_info:
            controller.edit(SID, "add glow")
        assert exc_info.value is error
        after = store.load(SID)
        assert after.versions == before.versions
        assert after.current_base_path == before.current_base_path

    def test_edit_without_any_version(self, controller):
        with pytest.raises(MissingBaseError):
            controller.edit("fresh", "add glow")

    def test_edit_with_missing_base_file(self, controller, store, seeded, gateway):
        store.resolve(seeded).unlink()
        with pytest.raises(MissingBaseError):
            controller.edit(SID, "add glow")
        assert gateway.calls == []

    def test_concurrent_edits_all_persist(self, store, make_png, seeded):
        controller = SessionController(store=store, gateway=StubGateway(make_png, delay=0.05))
        n = 6
        before = len(store.load(SID).versions)
        with ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(lambda i: controller.edit(SID, f"edit {i}"), range(n)))

        history = store.load(SID)
        paths = [v.path for v in history.versions]
        assert len(history.versions) == before + n
        assert len(set(paths)) == len(paths)
        assert len({v.id for v in history.versions}) == len(paths)
        assert {r.version.path for r in results} <= set(paths)
        assert history.current_base_path in {r.version.path for r in results}
        for version in history.versions[:-1]:
            assert version.base in paths


class TestUndo:
    def test_scenario_c_undo_returns_to_base(self, controller, store, seeded):
        controller.edit(SID, "add glow")
        response = controller.undo(SID)
        assert response.current_base == seeded
        assert store.load(SID).current_base_path == seeded

    def test_undo_walks_chain_one_hop_at_a_time(self, controller, store, seeded):
        first = controller.edit(SID, "one").version.path
        controller.edit(SID, "two")
        assert controller.undo(SID).current_base == first
        assert controller.undo(SID).current_base == seeded
        with pytest.raises(AlreadyAtOriginalError):
            controller.undo(SID)
        assert store.load(SID).current_base_path == seeded

    def test_undo_is_left_inverse_of_edit(self, controller, seeded):
        first = controller.edit(SID, "one").version
        controller.edit(SID, "two")
        controller.rollback(SID, first.path)
        assert controller.undo(SID).current_base == first.base

    def test_undo_never_touches_versions(self, controller, store, seeded):
        controller.edit(SID, "one")
        before = store.load(SID).versions
        controller.undo(SID)
        assert store.load(SID).versions == before

    def test_undo_with_nothing_current(self, controller):
        with pytest.raises(NothingToUndoError):
            controller.undo("empty")

    def test_undo_when_base_file_lost(self, controller, store, seeded):
        edit = controller.edit(SID, "one").version
        store.resolve(seeded).unlink()
        with pytest.raises(AlreadyAtOriginalError):
            controller.undo(SID)
        assert store.load(SID).current_base_path == edit.path


class TestRollback:
    def test_scenario_d_rollback_to_original(self, controller, store, seeded):
        controller.edit(SID, "add glow")
        response = controller.rollback(SID, seeded)
        assert response.current_base == seeded
        assert store.load(SID).current_base_path == seeded

    def test_rollback_is_idempotent(self, controller, store, seeded):
        first = controller.edit(SID, "one").version.path
        controller.edit(SID, "two")
        controller.rollback(SID, first)
        controller.rollback(SID, first)
        assert store.load(SID).current_base_path == first

    def test_rollback_to_any_listed_version(self, controller, store, seeded):
        for i in range(3):
            controller.edit(SID, f"edit {i}")
        for version in store.load(SID).versions:
            assert controller.rollback(SID, version.path).current_base == version.path

    def test_rollback_then_edit_branches_from_target(self, controller, seeded):
        controller.edit(SID, "one")
        controller.rollback(SID, seeded)
        assert controller.edit(SID, "two").version.base == seeded

    def test_rollback_accepts_other_session_image(self, controller, store, make_png, seeded):
        other = store.store_image_bytes("other", make_png(), "image/png")
        assert controller.rollback(SID, other.path).current_base == other.path

    @pytest.mark.parametrize("target", ["", None, "photo_editor/sess01/nope.png", "../../etc/passwd"])
    def test_rollback_to_invalid_target(self, controller, store, seeded, target):
        with pytest.raises(InvalidVersionError):
            controller.rollback(SID, target)
        assert store.load(SID).current_base_path == seeded

    @pytest.mark.parametrize("target", ["photo_editor/sess01/a\x00b.png", "photo_editor/sess01/" + "a" * 300 + ".png"])
    def test_rollback_to_unrepresentable_path(self, controller, store, seeded, target):
        result = controller.dispatch(SID, "rollback", path=target)
        assert result.status_code == 409
        assert result.payload == {"ok": 0, "error": "Invalid version"}
        assert store.load(SID).current_base_path == seeded


class TestUpload:
    def test_upload_creates_original_and_resets_pointers(self, controller, store, seeded, make_png):
        controller.edit(SID, "one")
        response = controller.upload(SID, make_png(fmt="JPEG"), "image/jpeg")
        history = store.load(SID)
        assert response.version.type == "original"
        assert response.version.path.endswith(".jpg")
        assert history.versions[0].path == response.version.path
        assert history.current_base_path == response.version.path
        assert history.original_path == response.version.path
        assert len(history.versions) == 3

    def test_upload_converts_unsupported_format(self, controller, make_png):
        response = controller.upload("conv", make_png(fmt="GIF"), "image/gif")
        assert response.version.path.endswith(".png")

    def test_upload_without_file(self, controller):
        with pytest.raises(NoFileError):
            controller.upload(SID, None)

    def test_upload_empty_file(self, controller):
        with pytest.raises(UploadError, match="interrupted"):
            controller.upload(SID, b"")

    def test_upload_too_large(self, store, gateway, make_png):
        controller = SessionController(store=store, gateway=gateway, max_upload_bytes=10)
        with pytest.raises(UploadError, match="too large"):
            controller.upload(SID, make_png())

    def test_upload_declaring_huge_dimensions(self, controller, store, seeded, oversized_png):
        with pytest.raises(ImageTooLargeError):
            controller.upload(SID, oversized_png, "image/png")
        result = controller.dispatch(SID, "upload", file_data=oversized_png, content_type="image/png")
        assert result.status_code == 400
        assert result.payload == {"ok": 0, "error": "File too large"}
        history = store.load(SID)
        assert [v.path for v in history.versions] == [seeded]
        assert history.current_base_path == seeded


class TestDispatch:
    def test_list_is_read_only(self, controller, store, seeded):
        result = controller.dispatch(SID, "list")
        assert result.status_code == 200
        assert result.payload == {
            "ok": 1,
            "all": result.payload["all"],
            "current_base": seeded,
        }
        assert result.payload["all"][0]["type"] == "original"
        assert result.payload["all"][0]["base"] is None

    def test_edit_payload_shape(self, controller, seeded):
        result = controller.dispatch(SID, "edit", prompt="add glow")
        assert result.status_code == 200
        assert set(result.payload) == {"ok", "version", "all", "current_base"}
        assert set(result.payload["version"]) == {
            "id", "timestamp", "type", "path", "url", "prompt", "base", "usage"
        }

    def test_undo_payload_shape(self, controller, seeded):
        controller.dispatch(SID, "edit", prompt="add glow")
        result = controller.dispatch(SID, "undo")
        assert result.payload == {"ok": 1, "current_base": seeded}

    def test_errors_become_envelopes(self, controller, seeded):
        result = controller.dispatch(SID, "edit", prompt="")
        assert result.status_code == 400
        assert result.payload == {"ok": 0, "error": "Enter a prompt"}

    def test_no_image_carries_raw(self, store, make_png, seeded):
        controller = SessionController(store=store, gateway=StubGateway(make_png, error=NoImageReturned("{}")))
        result = controller.dispatch(SID, "edit", prompt="add glow")
        assert result.status_code == 502
        assert result.payload == {"ok": 0, "error": "No image returned", "raw": "{}"}

    def test_unknown_action(self, controller):
        result = controller.dispatch(SID, "explode")
        assert result.status_code == 400
        assert result.payload["error"] == "Unknown action"

    def test_upload_disabled_for_design_sessions(self, store, gateway, make_png):
        controller = SessionController(store=store, gateway=gateway, allow_upload=False)
        result = controller.dispatch(SID, "upload", file_data=make_png())
        assert result.payload == {"ok": 0, "error": "Unknown action"}

    def test_corrupt_history_reported(self, controller, store):
        store.load("bad")
        store.db_path("bad").write_text("[")
        result = controller.dispatch("bad", "list")
        assert result.status_code == 500
        assert result.payload["ok"] == 0


class BrokenPersistStore(FileVersionStore):
    """Writes image files normally but cannot commit history changes."""

    def transaction(self, session_id):
        raise StorageError("Could not write session history: disk full")


class TestOrphanCleanup:
    def _session_files(self, store, prefix):
        return sorted(p.name for p in store.session_dir(SID).glob(f"{prefix}_*"))

    def test_failed_edit_persist_removes_generated_image(self, store, gateway, tmp_path, seeded):
        before = store.load(SID)
        broken = BrokenPersistStore(tmp_path, "photo_editor", "/media")
        controller = SessionController(store=broken, gateway=gateway)

        with pytest.raises(StorageError):
            controller.edit(SID, "add glow")

        assert len(gateway.calls) == 1
        assert self._session_files(store, "edit") == []
        after = store.load(SID)
        assert after.versions == before.versions
        assert after.current_base_path == seeded

    def test_failed_upload_persist_removes_stored_original(self, store, gateway, tmp_path, seeded, make_png):
        originals = self._session_files(store, "orig")
        broken = BrokenPersistStore(tmp_path, "photo_editor", "/media")
        controller = SessionController(store=broken, gateway=gateway)

        result = controller.dispatch(SID, "upload", file_data=make_png(), content_type="image/png")

        assert result.status_code == 500
        assert result.payload["ok"] == 0
        assert self._session_files(store, "orig") == originals
        history = store.load(SID)
        assert [v.path for v in history.versions] == [seeded]
        assert history.original_path == seeded
