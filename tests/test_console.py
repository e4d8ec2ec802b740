import io

from snapsync.console import tape_progress


def test_small_files_read_directly():
    f = io.BytesIO(b"hello")
    with tape_progress(f, 5) as tape:
        assert tape is f
        assert tape.read() == b"hello"


def test_big_files_read_through_progress_bar():
    data = b"x" * 64
    with tape_progress(io.BytesIO(data), len(data), bigsize=16, description="Hashing") as tape:
        assert tape.read() == data
