"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from mavparam_gateway.core.models import (
    ConnectionSettings,
    ConnectionType,
    DownloadState,
    DownloadStatus,
    Parameter,
)


class TestParameter:
    """Tests for Parameter model."""

    def test_valid(self):
        """A typical parameter validates."""
        param = Parameter(name="RTL_ALT", value=1500.0, index=3, count=10)

        assert param.name == "RTL_ALT"
        assert param.param_type == 9

    def test_name_max_length(self):
        """Names longer than 16 characters are rejected."""
        Parameter(name="A" * 16, value=0)
        with pytest.raises(ValidationError):
            Parameter(name="A" * 17, value=0)

    def test_blank_name(self):
        """Whitespace-only names are rejected."""
        with pytest.raises(ValidationError):
            Parameter(name="   ", value=0)

    def test_frozen(self):
        """Parameters are immutable."""
        param = Parameter(name="RTL_ALT", value=1500.0)
        with pytest.raises(ValidationError):
            param.value = 2000.0


class TestConnectionSettings:
    """Tests for ConnectionSettings model."""

    def test_serial(self):
        """Serial settings need a port name."""
        settings = ConnectionSettings(kind=ConnectionType.SERIAL, port_name="/dev/ttyACM0", baud_rate=57600)
        assert settings.describe() == "/dev/ttyACM0@57600"

    def test_serial_requires_port(self):
        """A serial link without a port name is invalid."""
        with pytest.raises(ValidationError):
            ConnectionSettings(kind=ConnectionType.SERIAL)

    def test_tcp(self):
        """TCP settings need host and port."""
        settings = ConnectionSettings(kind="tcp", host="127.0.0.1", port=5760)
        assert settings.kind == ConnectionType.TCP
        assert settings.describe() == "tcp://127.0.0.1:5760"

    def test_tcp_requires_host_and_port(self):
        """A TCP link without host or port is invalid."""
        with pytest.raises(ValidationError):
            ConnectionSettings(kind=ConnectionType.TCP, port=5760)
        with pytest.raises(ValidationError):
            ConnectionSettings(kind=ConnectionType.TCP, host="localhost")

    def test_port_range(self):
        """TCP ports must be 1-65535."""
        with pytest.raises(ValidationError):
            ConnectionSettings(kind=ConnectionType.TCP, host="localhost", port=70000)


class TestDownloadStatus:
    """Tests for DownloadStatus model."""

    def test_serializes_state_value(self):
        """State is reported by its string value."""
        status = DownloadStatus(state=DownloadState.TIMED_OUT, received=3, expected=5, in_progress=False, complete=True)
        assert status.model_dump(mode="json")["state"] == "timed_out"
