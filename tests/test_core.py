"""
End-to-end tests for StackworkCore: program loading, validation and runs.
"""

import asyncio
from pathlib import Path
from textwrap import dedent

import pytest

from stackwork import InMemoryBackend, StackworkCore
from stackwork.errors import ConfigurationError, CycleError, DeploymentError
from stackwork.models import FailureReason

PROGRAM = dedent(
    """
    from stackwork import InMemoryBackend


    def build(stack):
        ca = stack.resource("CA", "ca", {"common_name": "private-ca"})
        issuer = stack.resource("Issuer", "issuer", {"ca": ca.output("common_name")})
        cert = stack.resource(
            "Certificate", "ping", {"secret_name": "ping-tls"}, depends_on=[issuer]
        )
        service = stack.resource(
            "Service", "ping", {"tls_secret": cert.output("secret_name")}
        )
        stack.export("pingURL", service.output("status").apply(
            lambda s: f"https://{s['ip']}:9443"
        ))


    def create_backend():
        return InMemoryBackend(
            handlers={"Service": lambda name, inputs: {"status": {"ip": "10.0.0.7"}}},
        )
    """
)


def write_program(directory: Path, source: str = PROGRAM) -> Path:
    main_file = directory / "main.py"
    main_file.write_text(source)
    return main_file


class TestRun:
    """Tests for running build functions."""

    @pytest.mark.asyncio
    async def test_five_resource_chain(self, cert_chain_build, backend):
        """Test the certificate chain provisions fully."""
        core = StackworkCore(concurrency_limit=None, check_existing=False)

        result = await core.run(cert_chain_build, backend, stack_name="chain")

        assert result.success
        assert result.stack == "chain"
        assert result.order[0] == "CA/ca"
        assert result.order[-1] == "Service/service"
        assert set(result.states.values()) == {"ready"}

    @pytest.mark.asyncio
    async def test_failure_report(self, cert_chain_build):
        """Test raise_for_status surfaces the failed resources."""
        core = StackworkCore()
        backend = InMemoryBackend(failures={"Issuer/issuer": "webhook not ready"})

        result = await core.run(cert_chain_build, backend)

        assert not result.success
        assert [f.resource for f in result.failures] == [
            "Issuer/issuer",
            "Certificate/cert-a",
            "Certificate/cert-b",
            "Service/service",
        ]
        assert result.failures[0].reason is FailureReason.PROVISIONING_ERROR
        with pytest.raises(DeploymentError, match="Issuer/issuer"):
            result.raise_for_status()

    @pytest.mark.asyncio
    async def test_async_build_function(self, backend):
        """Test build functions may be coroutines."""

        async def build(stack):
            await asyncio.sleep(0)
            stack.resource("CA", "ca")

        result = await StackworkCore().run(build, backend)

        assert result.raise_for_status() is result

    @pytest.mark.asyncio
    async def test_configuration_error_before_provisioning(self, backend):
        """Test cycles abort the run before any backend call."""

        def build(stack):
            a = stack.resource("Svc", "a")
            b = stack.resource("Svc", "b", depends_on=[a])
            a.depend_on(b)

        with pytest.raises(CycleError):
            await StackworkCore().run(build, backend)
        assert backend.calls == []


class TestPrograms:
    """Tests for loading program files."""

    def test_up(self, temp_dir):
        """Test up() loads the program and uses its backend."""
        main_file = write_program(temp_dir)

        result = asyncio.run(StackworkCore().up(main_file))

        assert result.success
        assert result.exports == {"pingURL": "https://10.0.0.7:9443"}

    def test_up_with_backend_override(self, temp_dir):
        """Test an explicit backend replaces the program's."""
        main_file = write_program(temp_dir)
        backend = InMemoryBackend()

        result = asyncio.run(StackworkCore().up(main_file, backend=backend))

        # The echo backend returns no status field for the service
        assert result.unresolved_exports == ["pingURL"]
        assert backend.calls[0] == "CA/ca"

    def test_validate(self, temp_dir):
        """Test validate() reports order and dependencies without provisioning."""
        main_file = write_program(temp_dir)

        validation = asyncio.run(StackworkCore(stack_name="staging").validate(main_file))

        assert validation["stack"] == "staging"
        assert validation["order"] == [
            "CA/ca",
            "Issuer/issuer",
            "Certificate/ping",
            "Service/ping",
        ]
        assert validation["dependencies"]["Service/ping"] == ["Certificate/ping"]
        assert validation["exports"] == ["pingURL"]

    def test_missing_file(self, temp_dir):
        """Test a missing program file is reported."""
        with pytest.raises(FileNotFoundError):
            asyncio.run(StackworkCore().validate(temp_dir / "main.py"))

    def test_missing_build(self, temp_dir):
        """Test programs must define build(stack)."""
        main_file = write_program(temp_dir, "VALUE = 1\n")

        with pytest.raises(ConfigurationError, match="build"):
            asyncio.run(StackworkCore().validate(main_file))

    def test_missing_backend(self, temp_dir):
        """Test up() requires a backend from the program or the caller."""
        main_file = write_program(temp_dir, "def build(stack):\n    pass\n")

        with pytest.raises(ConfigurationError, match="backend"):
            asyncio.run(StackworkCore().up(main_file))

    def test_backend_must_be_a_backend(self, temp_dir):
        """Test the program backend must implement the Backend interface."""
        main_file = write_program(
            temp_dir, "def build(stack):\n    pass\n\nbackend = object()\n"
        )

        with pytest.raises(ConfigurationError, match="must be a Backend"):
            asyncio.run(StackworkCore().up(main_file))


EXAMPLES = Path(__file__).parent.parent / "examples"


class TestExamples:
    """Tests running the bundled example programs."""

    def test_mtls_ping_pong(self):
        """Test the mTLS example provisions and exports both URLs."""
        result = asyncio.run(StackworkCore().up(EXAMPLES / "mtls-ping-pong" / "main.py"))

        assert result.success
        assert result.exports == {
            "pingURL": "https://203.0.113.10:9443",
            "pongURL": "https://203.0.113.11:9443",
        }
        assert result.order.index("Secret/ca") < result.order.index("Issuer/ca")

    def test_cert_chain_failure(self, monkeypatch):
        """Test the certificate chain example reports skipped dependents."""
        monkeypatch.setenv("FAIL_ISSUER", "1")

        result = asyncio.run(StackworkCore().up(EXAMPLES / "cert-chain" / "main.py"))

        assert not result.success
        issuer = result.failure_for("Issuer/issuer")
        assert issuer.caused == ["Certificate/cert-a", "Certificate/cert-b", "Service/service"]
        assert result.unresolved_exports == ["serviceSecret"]
