"""
Unit tests for log_utils module.
"""

import logging

from src.poped.log_utils import configure_logger, log_to_file


class TestConfigureLogger:
    """Test logger configuration."""

    def test_single_stdout_handler(self):
        """Test repeated calls do not stack handlers."""
        name = "poped.tests.configure"
        configure_logger(name)
        logger = configure_logger(name, level=logging.DEBUG)

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
        assert not logger.propagate

    def test_message_format(self, capsys):
        """Test messages carry the level name."""
        logger = configure_logger("poped.tests.format")
        logger.info("Starting optimization")

        assert capsys.readouterr().out == "INFO: Starting optimization\n"


class TestLogToFile:
    """Test temporary file logging."""

    def test_writes_and_detaches(self, tmp_path):
        """Test the file handler is removed after the block."""
        logger = logging.getLogger("poped.tests.file")
        logger.setLevel(logging.INFO)
        path = tmp_path / "out.log"

        with log_to_file(logger, path):
            logger.info("inside")
        logger.info("outside")

        assert path.read_text() == "INFO: inside\n"
        assert logger.handlers == []

    def test_no_path_is_noop(self):
        """Test a missing path adds no handler."""
        logger = logging.getLogger("poped.tests.noop")

        with log_to_file(logger, None) as handler:
            assert handler is None
            assert logger.handlers == []

    def test_unconfigured_logger_captures_info(self, tmp_path):
        """Test INFO reaches the file when the logger inherits WARNING."""
        logger = logging.getLogger("poped.tests.inherit")
        logger.setLevel(logging.NOTSET)
        path = tmp_path / "out.log"

        with log_to_file(logger, path):
            logger.info("progress")
            logger.debug("detail")

        assert path.read_text() == "INFO: progress\n"
        assert logger.level == logging.NOTSET
