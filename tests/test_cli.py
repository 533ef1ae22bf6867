"""Tests for CLI commands."""

import json
from pathlib import Path

import httpx
import pytest

from excalidraw_agent import cli
from excalidraw_agent.cli import cmd_modify, cmd_resolve, cmd_summarize, main


class MockArgs:
    """Mock argparse namespace for testing."""

    def __init__(self, **kwargs):
        self.config = kwargs.get("config")
        self.verbose = kwargs.get("verbose", False)
        self.source = kwargs.get("source")
        self.json = kwargs.get("json", False)
        self.output_file = kwargs.get("output_file")
        self.request = kwargs.get("request")
        self.output = kwargs.get("output", "both")
        self.provider = kwargs.get("provider")
        self.model = kwargs.get("model")


@pytest.fixture
def diagram_file(tmp_path: Path, elements, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("EXCALIDRAW_AGENT_API_BASE", raising=False)
    path = tmp_path / "system.excalidraw"
    path.write_text(json.dumps({"type": "excalidraw", "elements": elements, "appState": {}}))
    return path


class TestCmdSummarize:
    """Tests for the summarize command."""

    @pytest.mark.asyncio
    async def test_table(self, diagram_file: Path, capsys) -> None:
        """Should print the summary table."""
        await cmd_summarize(MockArgs(source=str(diagram_file)))

        out = capsys.readouterr().out
        assert "Diagram Summary" in out
        assert "Unbound arrows" in out

    @pytest.mark.asyncio
    async def test_json(self, diagram_file: Path, capsys) -> None:
        """Should output JSON with --json flag."""
        await cmd_summarize(MockArgs(source=str(diagram_file), json=True))

        data = json.loads(capsys.readouterr().out)
        assert data["elementCount"] == 4
        assert data["shapeCount"] == 2
        assert data["bounds"] == {"minX": 0, "minY": 0, "maxX": 300, "maxY": 60}
        assert data["danglingBindings"] == []

    @pytest.mark.asyncio
    async def test_reports_dangling_bindings(self, tmp_path: Path, capsys, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "broken.excalidraw"
        path.write_text(
            json.dumps({"elements": [{"id": "a", "type": "arrow", "endBinding": {"elementId": "gone"}}]})
        )

        await cmd_summarize(MockArgs(source=str(path)))

        assert "bound to missing element gone" in capsys.readouterr().out


class TestCmdResolve:
    """Tests for the resolve command."""

    @pytest.mark.asyncio
    async def test_writes_output_file(self, diagram_file: Path, tmp_path: Path, elements) -> None:
        target = tmp_path / "scene.json"

        await cmd_resolve(MockArgs(source=str(diagram_file), output_file=str(target)))

        scene = json.loads(target.read_text())
        assert scene["elements"] == elements
        assert scene["appState"] == {}

    @pytest.mark.asyncio
    async def test_stdout(self, diagram_file: Path, capsys) -> None:
        await cmd_resolve(MockArgs(source=str(diagram_file)))

        assert json.loads(capsys.readouterr().out)["elements"][0]["id"] == "web"


class TestCmdModify:
    """Tests for the modify command with a fake generator and mocked HTTP."""

    @pytest.mark.asyncio
    async def test_modify_via_share_service(
        self, elements, make_generator, make_transport, monkeypatch, tmp_path, capsys
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("EXCALIDRAW_AGENT_API_BASE", "https://sketch.test")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/diagrams/parse":
                return httpx.Response(200, json={"elements": elements, "appState": {}})
            assert request.url.path == "/api/diagrams/share"
            return httpx.Response(200, json={"url": "https://draw.test/#json=s9,k9", "shareId": "s9"})

        generator = make_generator(
            [json.dumps({"modify": [{"id": "api", "changes": {"label": {"text": "Gateway"}}}]})]
        )
        monkeypatch.setattr(cli, "create_generator", lambda config: generator)
        monkeypatch.setattr(cli, "HttpTransport", lambda: make_transport(handler))

        await cmd_modify(
            MockArgs(source="https://example.com/d/1", request="Rename API", json=True)
        )

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "success"
        assert data["shareLink"]["url"] == "https://draw.test/#json=s9,k9"
        assert data["changes"]["modifiedIds"] == ["api"]

    @pytest.mark.asyncio
    async def test_failed_modification_exits(
        self, elements, make_generator, make_transport, monkeypatch, tmp_path
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("EXCALIDRAW_AGENT_API_BASE", "https://sketch.test")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"elements": elements})

        generator = make_generator([json.dumps({"remove": ["api"], "add": [{"id": "web", "type": "text"}]})])
        monkeypatch.setattr(cli, "create_generator", lambda config: generator)
        monkeypatch.setattr(cli, "HttpTransport", lambda: make_transport(handler))

        with pytest.raises(SystemExit) as exc_info:
            await cmd_modify(MockArgs(source="https://example.com/d/1", request="Break it"))

        assert exc_info.value.code == 1


class TestMain:
    """Tests for the entry point."""

    def test_summarize_json(self, diagram_file: Path, capsys) -> None:
        main(["summarize", str(diagram_file), "--json"])

        assert json.loads(capsys.readouterr().out)["arrowCount"] == 1

    def test_error_exits_nonzero(self, tmp_path: Path, monkeypatch, capsys) -> None:
        """Should print an error when a URL cannot be resolved."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("EXCALIDRAW_AGENT_API_BASE", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            main(["summarize", "https://example.com/not-a-share-link"])

        assert exc_info.value.code == 1
        assert "Error" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys) -> None:
        main([])

        assert "excalidraw-agent" in capsys.readouterr().out
