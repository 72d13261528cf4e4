# FILE: tests/test_file_uploads.py
"""
Tests for scribe/actions/file_uploads.py
Per-chat pending upload registry.
"""


class TestFileUploadsState:
    """Uploads are scoped to a chat and consumed once."""

    def test_take_returns_and_clears(self):
        from scribe.actions.file_uploads import FileUpload, FileUploadsState

        state = FileUploadsState()
        upload = FileUpload(file_path="/tmp/x.png", original_name="logo.png")
        state.add_upload(1, "upload-1", upload)

        assert state.take(1) == {"upload-1": upload}
        assert state.take(1) == {}
        assert state.get_uploads(1) == {}

    def test_chats_isolated(self):
        from scribe.actions.file_uploads import FileUpload, FileUploadsState

        state = FileUploadsState()
        state.add_upload(1, "a", FileUpload(file_path="/tmp/a", original_name="a"))
        state.add_upload(2, "b", FileUpload(file_path="/tmp/b", original_name="b"))
        state.clear(1)

        assert state.get_uploads(1) == {}
        assert list(state.get_uploads(2)) == ["b"]

    def test_get_uploads_returns_copy(self):
        from scribe.actions.file_uploads import FileUpload, FileUploadsState

        state = FileUploadsState()
        state.add_upload(1, "a", FileUpload(file_path="/tmp/a", original_name="a"))
        state.get_uploads(1).clear()

        assert list(state.get_uploads(1)) == ["a"]

    def test_singleton(self):
        from scribe.actions.file_uploads import get_file_uploads_state

        assert get_file_uploads_state() is get_file_uploads_state()
