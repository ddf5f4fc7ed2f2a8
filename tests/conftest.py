"""
Pytest configuration and fixtures for Stackwork tests.
"""

import tempfile
from pathlib import Path

import pytest

from stackwork import InMemoryBackend, Stack


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def backend():
    """In-memory backend with a small latency so independent calls overlap."""
    return InMemoryBackend(latency=0.01)


def build_cert_chain(stack: Stack) -> None:
    """Five-resource graph used across scheduler and core tests.

    ca → issuer → cert-a → service
                → cert-b

    issuer and service depend implicitly (through outputs), cert-a and cert-b
    explicitly.
    """
    ca = stack.resource("CA", "ca", {"common_name": "private-ca"})
    issuer = stack.resource("Issuer", "issuer", {"ca": ca.output("common_name")})
    cert_a = stack.resource(
        "Certificate", "cert-a", {"secret_name": "cert-a-tls"}, depends_on=[issuer]
    )
    stack.resource(
        "Certificate", "cert-b", {"secret_name": "cert-b-tls"}, depends_on=[issuer]
    )
    stack.resource("Service", "service", {"tls_secret": cert_a.output("secret_name")})


@pytest.fixture
def cert_chain_build():
    """The certificate chain build function."""
    return build_cert_chain


@pytest.fixture
def cert_chain():
    """A Stack declaring the five-resource certificate chain."""
    stack = Stack("test")
    build_cert_chain(stack)
    return stack
