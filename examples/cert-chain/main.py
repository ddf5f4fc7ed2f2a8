"""
Certificate Chain Example - failure reporting across a dependency chain.

Graph:
- ca (no dependencies)
- issuer (depends on ca)
- cert-a, cert-b (depend on issuer, independent of each other)
- service (consumes cert-a's secret name)

Set FAIL_ISSUER=1 to make the issuer fail and see cert-a, cert-b and service
reported as skipped with the chain that caused it:

    FAIL_ISSUER=1 stackwork up examples/cert-chain/main.py
"""

import os

from stackwork import InMemoryBackend, Stack


def build(stack: Stack) -> None:
    ca = stack.resource("CA", "ca", {"common_name": "private-ca"})
    issuer = stack.resource("Issuer", "issuer", {"ca": ca.output("common_name")})

    cert_a = stack.resource(
        "Certificate", "cert-a", {"secret_name": "cert-a-tls"}, depends_on=[issuer]
    )
    stack.resource(
        "Certificate", "cert-b", {"secret_name": "cert-b-tls"}, depends_on=[issuer]
    )

    service = stack.resource(
        "Service", "service", {"tls_secret": cert_a.output("secret_name")}
    )
    stack.export("serviceSecret", service.output("tls_secret"))


def create_backend() -> InMemoryBackend:
    failures = {}
    if os.environ.get("FAIL_ISSUER"):
        failures["Issuer/issuer"] = "admission webhook not ready"
    return InMemoryBackend(failures=failures, latency=0.1)
