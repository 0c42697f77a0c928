"""Tests for the PprintLogger and setup_logging functionality.

This module verifies:
- PprintLogger wraps standard logging.Logger correctly
- Dictionaries, metadata and pydantic models are formatted for reading
- pprint=False uses simple string conversion
- Disabled levels skip formatting entirely
- setup_logging names loggers after the calling module
"""

import logging
from io import StringIO

import pytest
from pydantic import BaseModel
from rdflib import Literal, URIRef

from reposchema.metadata import Metadata
from reposync.logging import PprintLogger, setup_logging


@pytest.fixture
def capture():
    """Provide a (PprintLogger, stream) pair logging at DEBUG level."""
    logger = logging.getLogger("reposync.tests.capture")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    logger.addHandler(handler)
    yield PprintLogger(logger), stream
    logger.handlers.clear()


class TestPprintLogger:
    """Tests for PprintLogger formatting and delegation."""

    def test_pprint_formats_dict(self, capture) -> None:
        logger, stream = capture

        logger.info({"message": "object created", "uri": "http://repo/1"})

        output = stream.getvalue()
        assert "'message': 'object created'" in output
        assert "http://repo/1" in output

    def test_pprint_false_uses_str(self, capture) -> None:
        logger, stream = capture
        test_dict = {"key": "value"}

        logger.info(test_dict, pprint=False)

        assert str(test_dict) in stream.getvalue()

    def test_metadata_rendered_as_ntriples(self, capture) -> None:
        """Metadata values inside a log dict are written as N-Triples."""
        logger, stream = capture
        meta = Metadata([("https://vocabs.example.org/hasTitle", Literal("A"))])

        logger.debug({"message": "patch", "insert": meta})
        logger.debug(Metadata([("https://vocabs.example.org/relation", URIRef("https://example.org/b"))]))

        output = stream.getvalue()
        assert '<https://vocabs.example.org/hasTitle> "A" .' in output
        assert "<https://example.org/b> ." in output

    def test_all_log_levels_support_pprint(self, capture) -> None:
        logger, stream = capture
        test_data = {"level": "test"}

        logger.debug(test_data)
        logger.info(test_data)
        logger.warning(test_data)
        logger.error(test_data)
        logger.critical(test_data)

        output = stream.getvalue()
        for level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            assert level in output

    def test_exception_logging(self, capture) -> None:
        logger, stream = capture

        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.exception({"message": "failed"})

        output = stream.getvalue()
        assert "failed" in output
        assert "Test exception" in output

    def test_disabled_level_skips_formatting(self, capture) -> None:
        logger, stream = capture
        logger.setLevel(logging.WARNING)

        class Exploding:
            def __repr__(self) -> str:
                raise AssertionError("formatted although disabled")

        logger.debug({"value": Exploding()})

        assert stream.getvalue() == ""

    def test_pydantic_model_uses_model_dump_json(self, capture) -> None:
        logger, stream = capture

        class Result(BaseModel):
            created: tuple[str, ...]

        logger.info(Result(created=("http://repo/1",)))

        assert '"created"' in stream.getvalue()

    def test_delegates_to_underlying_logger(self) -> None:
        logger = logging.getLogger("reposync.tests.delegate")
        pprint_logger = PprintLogger(logger)

        pprint_logger.setLevel(logging.WARNING)

        assert logger.level == logging.WARNING
        assert pprint_logger.handlers == logger.handlers


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_uses_caller_module_name(self) -> None:
        logger = setup_logging()

        assert isinstance(logger, PprintLogger)
        assert logger.name == __name__

    def test_explicit_name_and_level(self) -> None:
        logger = setup_logging("reposync.tests.level", level=logging.DEBUG)

        assert logger.name == "reposync.tests.level"
        assert logger.level == logging.DEBUG

    def test_handler_installed_once(self) -> None:
        setup_logging("reposync.tests.one")
        setup_logging("reposync.tests.two")

        assert len(logging.getLogger("reposync").handlers) == 1
