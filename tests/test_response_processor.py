# FILE: tests/test_response_processor.py
"""
Tests for scribe/actions/response_processor.py
Applying a whole response: step order, error aggregation, commit and annotations.
"""

from unittest.mock import MagicMock, patch

from conftest import git, requires_git

import pytest


@pytest.fixture
def backend():
    return MagicMock()


@pytest.fixture
def uploads():
    from scribe.actions.file_uploads import FileUploadsState
    return FileUploadsState()


@pytest.fixture
def apply(db_session, backend, uploads):
    """Run the orchestrator with test collaborators."""
    from scribe.actions.config import PipelineSettings
    from scribe.actions.response_processor import process_full_response_actions

    async def run(chat_id, message_id, response, chat_summary=None, settings=None):
        return await process_full_response_actions(
            db_session,
            response,
            chat_id,
            message_id,
            chat_summary,
            settings=settings or PipelineSettings(write_sql_migrations=False),
            backend=backend,
            uploads_state=uploads,
        )

    return run


@pytest.fixture
def no_commit():
    from scribe.actions.schemas import CommitOutcome

    with patch(
        "scribe.actions.response_processor.commit_changes",
        return_value=CommitOutcome(commit_hash="c0ffee"),
    ) as mock_commit:
        yield mock_commit


@requires_git
class TestEndToEnd:
    """Whole responses against a real repository."""

    @pytest.mark.asyncio
    async def test_delete_rename_write_same_path(self, db_session, project_records, git_repo, apply):
        from scribe.memory import service

        (git_repo / "src" / "other.ts").write_text("export const other = 2;\n", encoding="utf-8")
        git(git_repo, "add", "-A")
        git(git_repo, "commit", "--quiet", "-m", "add other")

        # Tag order in the text does not matter: deletes, renames, then writes
        response = (
            '<write path="src/app.ts">export const final = 3;</write>\n'
            '<rename from="src/other.ts" to="src/app.ts"></rename>\n'
            '<delete path="src/app.ts"></delete>\n'
        )
        _, chat, message = project_records(git_repo, response)

        result = await apply(chat.id, message.id, response)

        assert result.error is None
        assert result.files_changed
        assert (git_repo / "src" / "app.ts").read_text(encoding="utf-8") == "export const final = 3;"
        assert not (git_repo / "src" / "other.ts").exists()
        assert result.deleted_paths == ["src/app.ts"]
        assert result.renamed_paths == ["src/app.ts"]
        assert result.written_paths == ["src/app.ts"]

        assert git(git_repo, "log", "-1", "--format=%s").strip() == (
            "[scribe] deleted 1 file(s), renamed 1 file(s), wrote 1 file(s)"
        )
        assert git(git_repo, "rev-list", "--count", "HEAD").strip() == "3"
        assert git(git_repo, "status", "--porcelain").strip() == ""
        assert result.commit_id == git(git_repo, "rev-parse", "HEAD").strip()

        stored = service.get_message(db_session, message.id)
        assert stored.approval_state == "approved"
        assert stored.commit_hash == result.commit_id

    @pytest.mark.asyncio
    async def test_two_dependency_tags_single_install(self, db_session, project_records, git_repo, apply):
        from scribe.actions.dependencies import InstallResult
        from scribe.memory import service

        (git_repo / "package.json").write_text("{}\n", encoding="utf-8")
        response = (
            '<add-dependency packages="left right"></add-dependency>\n'
            '<add-dependency packages="right extra"></add-dependency>'
        )
        _, chat, message = project_records(git_repo, response)

        with patch(
            "scribe.actions.dependencies.install_packages",
            return_value=InstallResult(stdout="installed", stderr="", tool="pnpm"),
        ) as mock_install:
            result = await apply(chat.id, message.id, response, chat_summary="Add deps")

        mock_install.assert_called_once_with(["left", "right", "right", "extra"], git_repo)
        assert result.error is None
        assert result.written_paths == ["package.json"]
        assert git(git_repo, "log", "-1", "--format=%s").strip() == (
            "[scribe] Add deps - wrote 1 file(s), added left, right, right, extra package(s)"
        )
        stored = service.get_message(db_session, message.id)
        assert stored.content.count('">installed</add-dependency>') == 2

    @pytest.mark.asyncio
    async def test_out_of_band_files_reported(self, project_records, git_repo, apply):
        (git_repo / "notes.md").write_text("user edit\n", encoding="utf-8")
        response = '<write path="src/app.ts">changed</write>'
        _, chat, message = project_records(git_repo, response)

        result = await apply(chat.id, message.id, response)

        assert result.out_of_band_files == ["notes.md"]
        assert result.out_of_band_error is None
        assert git(git_repo, "log", "-1", "--format=%s").strip().endswith("+ extra files edited outside of Scribe")


class TestNoChanges:
    """Responses that change nothing never commit."""

    @pytest.mark.asyncio
    async def test_commit_manager_not_invoked(self, db_session, project_records, tmp_path, apply, no_commit):
        from scribe.memory import service

        response = "Just an explanation.\n<chat-summary>Explain</chat-summary>"
        _, chat, message = project_records(tmp_path, response)

        result = await apply(chat.id, message.id, response)

        no_commit.assert_not_called()
        assert result.error is None
        assert not result.files_changed
        assert result.commit_id is None
        stored = service.get_message(db_session, message.id)
        assert stored.commit_hash is None
        assert stored.approval_state == "approved"
        assert stored.content == response

    @pytest.mark.asyncio
    async def test_failed_search_replace_is_silent(self, db_session, project_records, tmp_path, apply, no_commit):
        """Deliberate: a patch that does not apply is only logged; the model sees the
        unchanged file next turn and retries."""
        from scribe.memory import service

        (tmp_path / "a.ts").write_text("const a = 1;\n", encoding="utf-8")
        response = (
            '<search-replace path="a.ts">\n'
            "<<<<<<< SEARCH\nconst missing = 0;\n=======\nconst b = 2;\n>>>>>>> REPLACE\n"
            "</search-replace>"
        )
        _, chat, message = project_records(tmp_path, response)

        result = await apply(chat.id, message.id, response)

        assert result.error is None
        assert result.warnings == [] and result.errors == []
        assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "const a = 1;\n"
        no_commit.assert_not_called()
        assert service.get_message(db_session, message.id).content == response

    @pytest.mark.asyncio
    async def test_missing_delete_and_rename_sources_logged_only(self, project_records, tmp_path, apply, no_commit):
        response = '<delete path="gone.ts"></delete><rename from="nope.ts" to="x.ts"></rename>'
        _, chat, message = project_records(tmp_path, response)

        result = await apply(chat.id, message.id, response)

        assert result.errors == [] and result.warnings == []
        assert not result.files_changed
        no_commit.assert_not_called()


class TestFileActions:
    """Writes, patches and uploads on disk."""

    @pytest.mark.asyncio
    async def test_search_replace_applied(self, project_records, tmp_path, apply, no_commit):
        (tmp_path / "a.ts").write_text("const a = 1;\n", encoding="utf-8")
        response = (
            '<search-replace path="a.ts">\n'
            "<<<<<<< SEARCH\nconst a = 1;\n=======\nconst a = 2;\n>>>>>>> REPLACE\n"
            "</search-replace>"
        )
        _, chat, message = project_records(tmp_path, response)

        result = await apply(chat.id, message.id, response)

        assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "const a = 2;\n"
        assert result.written_paths == ["a.ts"]
        no_commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_write_creates_directories(self, project_records, tmp_path, apply, no_commit):
        response = '<write path="src/deep/nested/file.ts">x</write>'
        _, chat, message = project_records(tmp_path, response)

        await apply(chat.id, message.id, response)

        assert (tmp_path / "src" / "deep" / "nested" / "file.ts").read_text(encoding="utf-8") == "x"

    @pytest.mark.asyncio
    async def test_upload_substituted(self, project_records, tmp_path, apply, uploads, no_commit):
        from scribe.actions.file_uploads import FileUpload

        stored_upload = tmp_path / "upload.bin"
        stored_upload.write_bytes(b"\x89PNG\r\n")
        project_root = tmp_path / "project"
        project_root.mkdir()
        response = '<write path="public/logo.png">upload-123</write>'
        _, chat, message = project_records(project_root, response)
        uploads.add_upload(chat.id, "upload-123", FileUpload(file_path=str(stored_upload), original_name="logo.png"))

        await apply(chat.id, message.id, response)

        assert (project_root / "public" / "logo.png").read_bytes() == b"\x89PNG\r\n"
        assert uploads.get_uploads(chat.id) == {}

    @pytest.mark.asyncio
    async def test_unreadable_upload_recorded(self, project_records, tmp_path, apply, uploads, no_commit):
        from scribe.actions.file_uploads import FileUpload

        response = '<write path="logo.png">upload-1</write>'
        _, chat, message = project_records(tmp_path, response)
        uploads.add_upload(chat.id, "upload-1", FileUpload(file_path=str(tmp_path / "missing"), original_name="logo.png"))

        result = await apply(chat.id, message.id, response)

        assert len(result.errors) == 1
        assert "logo.png" in result.errors[0].message
        assert (tmp_path / "logo.png").read_text(encoding="utf-8") == "upload-1"


class TestLinkedDatabase:
    """SQL, snapshots and function deploys for projects with a remote database."""

    @pytest.mark.asyncio
    async def test_sql_errors_annotated(self, db_session, project_records, tmp_path, apply, backend, no_commit):
        from scribe.actions.errors import RemoteBackendError
        from scribe.memory import service

        response = (
            "<execute-sql>CREATE TABLE a (id int);</execute-sql>\n"
            "<execute-sql>DROP TABLE x;</execute-sql>"
        )
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")
        backend.execute_sql.side_effect = [None, RemoteBackendError("HTTP 400: no such table", status=400)]

        result = await apply(chat.id, message.id, response)

        assert backend.execute_sql.call_count == 2
        assert [e.message for e in result.errors] == ["Failed to execute SQL query: DROP TABLE x;"]
        no_commit.assert_not_called()
        stored = service.get_message(db_session, message.id)
        assert stored.content == (
            response
            + '\n\n<output type="error" message="Failed to execute SQL query: DROP TABLE x;">'
            + "HTTP 400: no such table</output>"
        )

    @pytest.mark.asyncio
    async def test_sql_ignored_without_linked_database(self, project_records, tmp_path, apply, backend, no_commit):
        response = "<execute-sql>DROP TABLE x;</execute-sql>"
        _, chat, message = project_records(tmp_path, response)

        await apply(chat.id, message.id, response)

        backend.execute_sql.assert_not_called()

    @pytest.mark.asyncio
    async def test_sql_migration_written(self, project_records, tmp_path, apply, no_commit):
        from scribe.actions.config import MIGRATIONS_DIR, PipelineSettings

        response = '<execute-sql description="Create a">CREATE TABLE a (id int);</execute-sql>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        result = await apply(chat.id, message.id, response, settings=PipelineSettings(write_sql_migrations=True))

        assert result.written_paths == [f"{MIGRATIONS_DIR}/0000_create_a.sql"]
        no_commit.assert_called_once()
        summary = no_commit.call_args[0][3]
        assert summary.sql_count == 1

    @pytest.mark.asyncio
    async def test_snapshot_taken_before_actions(self, project_records, tmp_path, apply, no_commit):
        response = '<write path="a.ts">a</write>'
        project, chat, message = project_records(
            tmp_path, response, linked_database_project_id="ref", database_branch_id="br",
        )

        with patch("scribe.actions.response_processor.store_db_snapshot_at_current_version") as mock_snapshot:
            await apply(chat.id, message.id, response)

        mock_snapshot.assert_called_once()
        assert mock_snapshot.call_args[0][1].id == project.id

    @pytest.mark.asyncio
    async def test_snapshot_failure_is_fatal(self, project_records, tmp_path, apply, no_commit):
        from scribe.actions.errors import DatabaseVersioningError

        response = '<write path="a.ts">a</write>'
        _, chat, message = project_records(
            tmp_path, response, linked_database_project_id="ref", database_branch_id="br",
        )

        with patch(
            "scribe.actions.response_processor.store_db_snapshot_at_current_version",
            side_effect=DatabaseVersioningError("branch gone"),
        ):
            result = await apply(chat.id, message.id, response)

        assert "database versioning is not working" in result.error
        assert not (tmp_path / "a.ts").exists()
        no_commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_function_write_deployed(self, project_records, tmp_path, apply, backend, no_commit):
        response = '<write path="supabase/functions/hello/index.ts">Deno.serve(h);</write>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        result = await apply(chat.id, message.id, response)

        backend.deploy_function.assert_called_once_with("ref", "hello", "Deno.serve(h);")
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_deploy_failure_keeps_local_write(self, project_records, tmp_path, apply, backend, no_commit):
        from scribe.actions.errors import RemoteBackendError

        backend.deploy_function.side_effect = RemoteBackendError("HTTP 500", status=500)
        response = '<write path="supabase/functions/hello/index.ts">Deno.serve(h);</write>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        result = await apply(chat.id, message.id, response)

        assert (tmp_path / "supabase" / "functions" / "hello" / "index.ts").exists()
        assert result.written_paths == ["supabase/functions/hello/index.ts"]
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_function_delete_torn_down(self, project_records, tmp_path, apply, backend, no_commit):
        function_dir = tmp_path / "supabase" / "functions" / "hello"
        function_dir.mkdir(parents=True)
        (function_dir / "index.ts").write_text("x", encoding="utf-8")
        response = '<delete path="supabase/functions/hello"></delete>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        result = await apply(chat.id, message.id, response)

        assert not function_dir.exists()
        backend.delete_function.assert_called_once_with("ref", "hello")
        assert result.deleted_paths == ["supabase/functions/hello"]

    @pytest.mark.asyncio
    async def test_function_rename(self, project_records, tmp_path, apply, backend, no_commit):
        from scribe.actions.errors import RemoteBackendError

        old_dir = tmp_path / "supabase" / "functions" / "old"
        old_dir.mkdir(parents=True)
        (old_dir / "index.ts").write_text("serve();", encoding="utf-8")
        backend.delete_function.side_effect = RemoteBackendError("HTTP 404", status=404)
        response = '<rename from="supabase/functions/old" to="supabase/functions/new"></rename>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        result = await apply(chat.id, message.id, response)

        assert (tmp_path / "supabase" / "functions" / "new" / "index.ts").exists()
        backend.deploy_function.assert_called_once_with("ref", "new", "serve();")
        # Teardown of the old name is only a warning
        assert len(result.warnings) == 1
        assert result.errors == []


class TestFatalErrors:
    """Lookups that abort the run."""

    @pytest.mark.asyncio
    async def test_unknown_chat(self, apply):
        result = await apply(999, 1, '<write path="a.ts">a</write>')

        assert "No project found for chat ID: 999" in result.error
        assert result.written_paths == []

    @pytest.mark.asyncio
    async def test_message_must_be_assistant(self, db_session, project_records, tmp_path, apply):
        from scribe.memory import service

        response = '<write path="a.ts">a</write>'
        _, chat, _ = project_records(tmp_path, response)
        user_message = service.list_chat_messages(db_session, chat.id)[0]

        result = await apply(chat.id, user_message.id, response)

        assert "No assistant message found" in result.error
        assert not (tmp_path / "a.ts").exists()

    @pytest.mark.asyncio
    async def test_commit_failure_reported_and_annotations_kept(
        self, db_session, project_records, tmp_path, apply, backend,
    ):
        from scribe import git_utils
        from scribe.actions.errors import RemoteBackendError
        from scribe.memory import service

        backend.execute_sql.side_effect = RemoteBackendError("boom")
        response = '<execute-sql>SELECT 1;</execute-sql><write path="a.ts">a</write>'
        _, chat, message = project_records(tmp_path, response, linked_database_project_id="ref")

        with patch(
            "scribe.actions.response_processor.commit_changes",
            side_effect=git_utils.GitCommandError("not a git repository"),
        ):
            result = await apply(chat.id, message.id, response)

        assert result.error == "not a git repository"
        stored = service.get_message(db_session, message.id)
        assert '<output type="error" message="Failed to execute SQL query: SELECT 1;">boom</output>' in stored.content
        assert stored.approval_state is None


class TestDryRun:
    """Search-replace preview without writing."""

    def test_reports_failures_only(self, tmp_path):
        from scribe.actions.response_processor import dry_run_search_replace

        (tmp_path / "a.ts").write_text("const a = 1;\n", encoding="utf-8")
        response = (
            '<search-replace path="a.ts">\n'
            "<<<<<<< SEARCH\nconst a = 1;\n=======\nconst a = 2;\n>>>>>>> REPLACE\n"
            "</search-replace>\n"
            '<search-replace path="a.ts">\n'
            "<<<<<<< SEARCH\nnot there\n=======\nx\n>>>>>>> REPLACE\n"
            "</search-replace>\n"
            '<search-replace path="missing.ts">\n'
            "<<<<<<< SEARCH\nx\n=======\ny\n>>>>>>> REPLACE\n"
            "</search-replace>"
        )

        issues = dry_run_search_replace(response, tmp_path)

        assert [i["file_path"] for i in issues] == ["a.ts", "missing.ts"]
        assert "search text not found" in issues[0]["error"]
        assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "const a = 1;\n"


class TestFormatOutputAnnotations:
    def test_warnings_before_errors_and_quotes_escaped(self):
        from scribe.actions.response_processor import format_output_annotations
        from scribe.actions.schemas import Output

        text = format_output_annotations(
            [Output(message='Rename "a"', error="w")],
            [Output(message="Failed", error=None)],
        )

        assert text == (
            '<output type="warning" message="Rename &quot;a&quot;">w</output>\n'
            '<output type="error" message="Failed"></output>'
        )

    def test_error_body_escaped(self):
        from scribe.actions.response_processor import format_output_annotations
        from scribe.actions.schemas import Output

        text = format_output_annotations([], [Output(message="Failed", error="bad </output><write path=\"x\">&")])

        assert text == (
            '<output type="error" message="Failed">'
            'bad &lt;/output&gt;&lt;write path="x"&gt;&amp;</output>'
        )
        assert text.count("</output>") == 1
