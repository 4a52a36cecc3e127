import logging

from nlp_pipelines.utils.project_logger import ColoredFormatter, get_logger, setup_logger


def test_get_logger_uses_package_namespace():
    assert get_logger().name == "nlp_pipelines"
    assert get_logger("stream").name == "nlp_pipelines.stream"
    assert get_logger("nlp_pipelines.session").name == "nlp_pipelines.session"


def test_setup_logger_writes_plain_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logger(str(log_file), level=logging.DEBUG)

    get_logger("session").debug("model loaded")
    for handler in logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert "nlp_pipelines.session - DEBUG" in content
    assert "model loaded" in content
    assert "\033[" not in content


def test_setup_logger_replaces_handlers():
    setup_logger()
    logger = setup_logger()
    assert len(logger.handlers) == 1
    assert not logger.propagate


def test_colored_formatter():
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, None)
    colored = ColoredFormatter("%(color)s%(emoji)s %(message)s%(reset)s").format(record)
    plain = ColoredFormatter("%(color)s%(emoji)s %(message)s%(reset)s", use_color=False).format(record)
    assert colored.startswith("\033[31m")
    assert plain == "❌ failed"
