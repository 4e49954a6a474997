import pytest

from main import build_parser


def test_parse_generate():
    args = build_parser().parse_args(["generate", "1", "100"])
    assert (args.command, args.start, args.end) == ("generate", 1, 100)


def test_parse_check():
    args = build_parser().parse_args(["check", "alice"])
    assert args.username == "alice"


def test_parse_serve_defaults():
    args = build_parser().parse_args(["serve", "--port", "9000"])
    assert args.port == 9000


def test_serve_is_default():
    args = build_parser().parse_args([])
    assert args.command == "serve"
    assert isinstance(args.port, int)


def test_unknown_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["explode"])
