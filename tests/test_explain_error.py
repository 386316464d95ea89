import io
from unittest.mock import patch

import pytest

from explain_error import explain, explain_context, main, parse_args
from generate_stream import MODEL, RequestFailed, TransportError
from last_error import ErrorContext, from_fields


def _fake_stream(*fragments):
    def stream(model, prompt, sink=None, timeout=None):
        for fragment in fragments:
            sink.write(fragment)
        return len(fragments)
    return stream


class TestExplainContext:
    @patch("explain_error.stream_completion")
    def test_echo_blank_line_then_analysis(self, stream):
        stream.side_effect = _fake_stream("## Explanation", "\nIt broke.")
        out = io.StringIO()

        explain_context(from_fields("Oops: bad thing", "line 2"), sink=out)

        assert out.getvalue() == "Oops: bad thing\n\n## Explanation\nIt broke.\n"
        model, prompt = stream.call_args.args
        assert model == MODEL
        assert "Oops: bad thing" in prompt

    @patch("explain_error.stream_completion")
    def test_unreadable_script_sends_nothing(self, stream, tmp_path):
        context = ErrorContext("M", "P", str(tmp_path / "missing.ps1"))
        out = io.StringIO()

        with pytest.raises(FileNotFoundError):
            explain_context(context, sink=out)

        stream.assert_not_called()
        assert out.getvalue() == ""

    @patch("explain_error.stream_completion")
    def test_explain_given_exception(self, stream):
        stream.side_effect = _fake_stream("ok")
        out = io.StringIO()

        explain(KeyError("token"), sink=out)

        assert out.getvalue().startswith("KeyError: 'token'\n\n")

    @patch("explain_error.last_exception")
    @patch("explain_error.stream_completion")
    def test_explain_uses_last_exception(self, stream, last_exception):
        last_exception.return_value = NameError("name 'x' is not defined")
        stream.side_effect = _fake_stream("ok")
        out = io.StringIO()

        explain(sink=out)

        assert out.getvalue().startswith("NameError: name 'x' is not defined\n\n")


class TestParseArgs:
    def test_message_mode(self):
        args = parse_args(["--message", "M", "--position", "P", "--script", "a.ps1"])
        assert (args.message, args.position, args.script) == ("M", "P", "a.ps1")
        assert args.command == []

    def test_command_mode(self):
        args = parse_args(["-v", "--", "python", "app.py", "--port", "8"])
        assert args.command == ["python", "app.py", "--port", "8"]
        assert args.verbose == 1

    def test_nothing_to_explain(self):
        with pytest.raises(SystemExit) as info:
            parse_args([])
        assert info.value.code == 2

    def test_message_and_command_conflict(self):
        with pytest.raises(SystemExit):
            parse_args(["--message", "M", "--", "ls"])


class TestMain:
    @patch("explain_error.stream_completion")
    def test_message_mode_succeeds(self, stream, capsys):
        stream.side_effect = _fake_stream("answer")

        assert main(["--message", "M", "--position", "P"]) == 0
        assert capsys.readouterr().out == "M\n\nanswer\n"

    @patch("explain_error.stream_completion")
    def test_request_failure_reported(self, stream, capsys):
        stream.side_effect = RequestFailed(404, "Not Found")

        assert main(["--message", "M"]) == 1
        err = capsys.readouterr().err
        assert "404" in err and "Not Found" in err

    @patch("explain_error.stream_completion")
    @patch("explain_error.run_command")
    def test_successful_command_not_explained(self, run_command, stream):
        run_command.return_value = None

        assert main(["--", "true"]) == 0
        stream.assert_not_called()

    @patch("explain_error.stream_completion")
    @patch("explain_error.run_command")
    def test_failed_command_explained(self, run_command, stream, capsys):
        run_command.return_value = ErrorContext("boom", "Command: make\nExit status: 2")
        stream.side_effect = _fake_stream("fix it")

        assert main(["--", "make"]) == 1
        run_command.assert_called_once_with(["make"])
        assert capsys.readouterr().out == "boom\n\nfix it\n"

    @patch("explain_error.stream_completion")
    def test_command_that_cannot_execute(self, stream, tmp_path, capsys):
        script = tmp_path / "build.sh"
        script.write_text("#!/bin/sh\nmake\n", encoding="utf-8")
        script.chmod(0o644)
        stream.side_effect = _fake_stream("chmod +x it")

        assert main(["--", str(script)]) == 1
        out = capsys.readouterr().out
        assert "Permission denied" in out
        assert out.endswith("\n\nchmod +x it\n")
        prompt = stream.call_args.args[1]
        assert "#!/bin/sh\nmake\n" in prompt

    @patch("explain_error.stream_completion")
    def test_transport_error_ends_partial_line(self, stream, capsys):
        def broken(model, prompt, sink=None, timeout=None):
            sink.write("half an answ")
            raise TransportError("connection reset")
        stream.side_effect = broken

        assert main(["--message", "M"]) == 1
        captured = capsys.readouterr()
        assert captured.out == "M\n\nhalf an answ\n"
        assert captured.err == "Error: connection reset\n"
