"""Unit tests for main application entry point."""

import os
from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi import FastAPI

from src.main import create_application


@pytest.mark.unit
class TestCreateApplication:
    """Tests for create_application function."""

    @patch("src.main.setup_observability")
    @patch("src.main.get_fastapi_app")
    @patch("src.main.get_catalog_engine")
    @patch("src.main.configure_logging")
    @patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}, clear=True)
    def test_creates_application_with_all_dependencies(
        self,
        mock_configure_logging: Mock,
        mock_get_engine: Mock,
        mock_get_app: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        """Test that application is created with logging, database and observability."""
        mock_engine = MagicMock()
        mock_get_engine.return_value = mock_engine
        mock_app = MagicMock(spec=FastAPI)
        mock_get_app.return_value = mock_app

        result = create_application()

        mock_configure_logging.assert_called_once_with("DEBUG")
        mock_get_engine.assert_called_once()
        mock_setup_observability.assert_called_once_with(app=mock_app, engine=mock_engine)
        assert result == mock_app

    @patch("src.main.setup_observability")
    @patch("src.main.get_fastapi_app")
    @patch("src.main.get_catalog_engine")
    @patch("src.main.configure_logging")
    @patch.dict(os.environ, {}, clear=True)
    def test_uses_default_log_level(
        self,
        mock_configure_logging: Mock,
        mock_get_engine: Mock,
        mock_get_app: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        """Test that INFO is used when LOG_LEVEL is not set."""
        create_application()

        mock_configure_logging.assert_called_once_with("INFO")

    @patch("src.main.setup_observability")
    @patch("src.main.get_fastapi_app")
    @patch("src.main.get_catalog_engine")
    @patch("src.main.configure_logging")
    def test_propagates_configuration_errors(
        self,
        mock_configure_logging: Mock,
        mock_get_engine: Mock,
        mock_get_app: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        """Test that a missing queue configuration fails application startup."""
        mock_get_app.side_effect = ValueError("SYNC_QUEUE_URL must be set in environment")

        with pytest.raises(ValueError, match="SYNC_QUEUE_URL"):
            create_application()

        mock_setup_observability.assert_not_called()
