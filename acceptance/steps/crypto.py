"""Steps generating signing key material."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from acceptance.core.context import ScenarioContext
from acceptance.core.environment import Codec, Key
from acceptance.core.registry import StepCollector

NAME = "crypto"


@dataclass(frozen=True)
class KeyPair:
    """EC P-256 key pair in PEM encoding."""

    name: str
    private_pem: str
    public_pem: str

    @classmethod
    def generate(cls, name: str) -> KeyPair:
        private_key = ec.generate_private_key(ec.SECP256R1())
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")
        return cls(name=name, private_pem=private_pem, public_pem=public_pem)

    def sign(self, payload: bytes) -> bytes:
        private_key = serialization.load_pem_private_key(self.private_pem.encode("ascii"), password=None)
        return private_key.sign(payload, ec.ECDSA(hashes.SHA256()))

    def verify(self, payload: bytes, signature: bytes) -> bool:
        public_key = serialization.load_pem_public_key(self.public_pem.encode("ascii"))
        try:
            public_key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True


@dataclass(frozen=True)
class KeyRing:
    """Named key pairs generated within one scenario."""

    pairs: dict[str, KeyPair] = field(default_factory=dict)

    def with_pair(self, pair: KeyPair) -> KeyRing:
        return KeyRing({**self.pairs, pair.name: pair})

    def get(self, name: str) -> KeyPair:
        if name not in self.pairs:
            raise AssertionError(f"no key pair named '{name}', known: {sorted(self.pairs)}")
        return self.pairs[name]

    def as_variables(self) -> dict[str, str]:
        variables = {}
        for name, pair in self.pairs.items():
            prefix = name.upper().replace("-", "_")
            variables[f"{prefix}_PUBLIC_KEY"] = pair.public_pem
            variables[f"{prefix}_PRIVATE_KEY"] = pair.private_pem
        return variables


def _dump(ring: KeyRing) -> dict[str, Any]:
    return {
        name: {"private": pair.private_pem, "public": pair.public_pem}
        for name, pair in ring.pairs.items()
    }


def _load(payload: dict[str, Any]) -> KeyRing:
    pairs = {}
    for name, pems in payload.items():
        pairs[name] = KeyPair(name=name, private_pem=pems["private"], public_pem=pems["public"])
    return KeyRing(pairs)


KEY_RING = Key("crypto.keys", owner=NAME, codec=Codec(dump=_dump, load=_load), type=KeyRing)
SIGNATURE = Key("crypto.signature", owner=NAME, type=bytes)

KEYS = (KEY_RING, SIGNATURE)


def generate_key_pair(context: ScenarioContext, name: str) -> None:
    ring: KeyRing = context.env.get(KEY_RING, KeyRing())
    context.env.set(KEY_RING, ring.with_pair(KeyPair.generate(name)))
    context.logger.logf("Generated key pair %s", name)


def sign_payload(context: ScenarioContext, payload: str, name: str) -> None:
    pair = context.env.get(KEY_RING).get(name)
    context.env.set(SIGNATURE, pair.sign(payload.encode("utf-8")))
    context.logger.logf("Signed payload with %s: %s", name, base64.b64encode(context.env.get(SIGNATURE)).decode())


def signature_should_verify(context: ScenarioContext, payload: str, name: str) -> None:
    pair = context.env.get(KEY_RING).get(name)
    assert pair.verify(payload.encode("utf-8"), context.env.get(SIGNATURE)), (
        f"signature does not verify with key pair '{name}'"
    )


def signature_should_not_verify(context: ScenarioContext, payload: str, name: str) -> None:
    pair = context.env.get(KEY_RING).get(name)
    assert not pair.verify(payload.encode("utf-8"), context.env.get(SIGNATURE)), (
        f"signature unexpectedly verifies with key pair '{name}'"
    )


def add_steps_to(steps: StepCollector) -> None:
    steps.given('a key pair named "{name}"', generate_key_pair)
    steps.when('"{payload}" is signed with the key "{name}"', sign_payload, requires=(KEY_RING,))
    steps.then(
        'the signature of "{payload}" should verify with the key "{name}"',
        signature_should_verify,
        requires=(KEY_RING, SIGNATURE),
    )
    steps.then(
        'the signature of "{payload}" should not verify with the key "{name}"',
        signature_should_not_verify,
        requires=(KEY_RING, SIGNATURE),
    )
