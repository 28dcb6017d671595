"""Functional tests for logging configuration and its config section."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from formbuilder.config import load_config
from formbuilder.logging_setup import build_logging_config, configure_logging


def test_levels_flow_into_dict_config():
    cfg = build_logging_config("DEBUG", "INFO")
    assert cfg["loggers"]["formbuilder"]["level"] == "DEBUG"
    assert cfg["loggers"]["sqlalchemy.engine"]["level"] == "INFO"
    assert cfg["handlers"]["console"]["filters"] == ["request_id"]
    assert "%(request_id)s" in cfg["formatters"]["default"]["format"]


def test_configure_logging_applies_once(mocker):
    apply = mocker.patch("formbuilder.logging_setup.dictConfig")
    mocker.patch.object(logging.getLogger(), "handlers", [])
    assert configure_logging(level="DEBUG") is True
    applied = apply.call_args.args[0]
    assert applied["loggers"]["formbuilder"]["level"] == "DEBUG"

    mocker.patch.object(logging.getLogger(), "handlers", [logging.NullHandler()])
    assert configure_logging() is False
    assert apply.call_count == 1


def test_log_level_read_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert load_config().logging.level == "DEBUG"


def test_unknown_log_level_rejected(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    with pytest.raises(PydanticValidationError):
        load_config()
