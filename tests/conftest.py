"""Shared fixtures: an in-memory store with one beneficiary, the app, and client certificates."""

import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from db_store import Beneficiary, InMemoryBeneficiaryStore
from main import create_app
from metrics import MetricRegistry

BASE_PATH = "/v1/fhir"
SERVER_BASE = "http://testserver" + BASE_PATH


@pytest.fixture
def beneficiary():
    return Beneficiary(
        beneficiary_id="BENE001",
        medicare_enrollment_status_code="10",
        entitlement_code_original="0",
        entitlement_code_current="0",
        end_stage_renal_disease_code="N",
        part_a_termination_code="0",
        part_b_termination_code="0",
        part_d_contract_number_ids=["H9999", None, None, None, None, None, None, None, None, None, None, "Y9999"],
    )


@pytest.fixture
def store(beneficiary):
    return InMemoryBeneficiaryStore([beneficiary])


@pytest.fixture
def empty_store():
    return InMemoryBeneficiaryStore()


@pytest.fixture
def metrics():
    return MetricRegistry()


@pytest.fixture
def client(store, metrics):
    return TestClient(create_app(store=store, metrics=metrics, fhir_base_path=BASE_PATH))


@pytest.fixture
def empty_client(empty_store, metrics):
    return TestClient(create_app(store=empty_store, metrics=metrics, fhir_base_path=BASE_PATH))


def make_certificate(common_name="client.example.com", organization="CMS", unit="Blue Button", country="US"):
    """A self-signed certificate with subject C=<country>, O=<organization>, OU=<unit>, CN=<common_name>."""
    key = ec.generate_private_key(ec.SECP256R1())
    attributes = []
    if country:
        attributes.append(x509.NameAttribute(NameOID.COUNTRY_NAME, country))
    if organization:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    if unit:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, unit))
    if common_name:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    name = x509.Name(attributes)
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "issuer")]))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )


def certificate_pem(cert) -> str:
    return cert.public_bytes(Encoding.PEM).decode("ascii")


@pytest.fixture
def client_certificate():
    return make_certificate()


def with_client_cert_chain(app, chain):
    """Wrap an ASGI app so every request carries `chain` in the TLS extension, as a TLS-terminating server would."""

    async def wrapped(scope, receive, send):
        if scope["type"] == "http":
            scope = dict(scope)
            extensions = dict(scope.get("extensions") or {})
            extensions["tls"] = {"client_cert_chain": chain}
            scope["extensions"] = extensions
        await app(scope, receive, send)

    return wrapped
