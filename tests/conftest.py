import io
import os
import struct
import sys
import tempfile
import zlib
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("IMAGE_PROVIDER", "local")
os.environ.setdefault("EDITOR_STORAGE_DIR", tempfile.mkdtemp(prefix="editor-storage-"))
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")


def make_image_bytes(w=4, h=4, color=(128, 64, 32), fmt="PNG") -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_png_header(w, h) -> bytes:
    """A PNG that declares w x h pixels but carries no real pixel data."""

    def chunk(tag: bytes, body: bytes) -> bytes:
        return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", zlib.crc32(tag + body) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", w, h, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")


@pytest.fixture()
def make_png():
    return make_image_bytes


@pytest.fixture()
def oversized_png():
    return make_png_header(20000, 20000)


@pytest.fixture()
def storage_dir(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "storage"
    monkeypatch.setenv("EDITOR_STORAGE_DIR", str(root))
    return root


@pytest.fixture()
def client(storage_dir) -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()
    return TestClient(app)
