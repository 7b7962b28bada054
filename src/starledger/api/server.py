"""
Star Ledger - HTTP Request Layer

Thin Flask routing over the chain engine and the validation pool. Input is
validated with pydantic before any core call; core failures are mapped to
status codes here and nowhere else.

Endpoints:
    POST /requestValidation               issue or refresh a challenge
    POST /message-signature/validate      verify a signed challenge
    GET  /stars/address:<identity>        blocks registered by an identity
    GET  /stars/hash:<block_hash>         block by hash
    GET  /block/<height>                  block by height
    POST /block                           append a registration
    GET  /chain/validate                  integrity report
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Tuple, Type, TypeVar, Union

from flask import Flask, jsonify, request
from pydantic import BaseModel, ValidationError

from starledger.api.schemas import RegistrationInput, SignatureInput, ValidationRequestInput
from starledger.core.blockchain import Blockchain
from starledger.core.config import API_MAX_JSON_BYTES, DATABASE_PATH
from starledger.core.exceptions import (
    AuthorizationNotFoundError,
    MalformedInputError,
    StorageError,
    UnauthorizedError,
    get_error_context,
)
from starledger.core.storage import open_sqlite_stores
from starledger.core.validation_pool import ValidationPool

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _error(status: int, message: str, **extra: Any):
    return jsonify({"status": status, "message": message, **extra}), status


def _parse_body(model: Type[ModelT]) -> Tuple[Optional[ModelT], Optional[Any]]:
    """Validate the JSON (or form) body against ``model``.

    Returns ``(parsed, None)`` or ``(None, error_response)``.
    """
    data = request.get_json(silent=True)
    if data is None and request.form:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        return None, (jsonify({"errors": [{"msg": "No JSON data provided"}]}), 422)
    try:
        return model.model_validate(data), None
    except ValidationError as e:
        logger.info(
            "Request validation failed for %s",
            request.path,
            extra={"event": "api.invalid_input", "error_count": e.error_count()},
        )
        return None, (jsonify({"errors": json.loads(e.json(include_url=False))}), 422)


def create_app(
    blockchain: Optional[Blockchain] = None,
    pool: Optional[ValidationPool] = None,
    db_path: Union[str, Path, None] = None,
) -> Flask:
    """
    Build the Flask application.

    Engines may be injected (tests); otherwise both are opened over the
    SQLite database at ``db_path`` (default ``STARLEDGER_DB_PATH``).
    """
    if blockchain is None or pool is None:
        ledger_store, auth_store = open_sqlite_stores(db_path or DATABASE_PATH)
        blockchain = blockchain or Blockchain(ledger_store)
        pool = pool or ValidationPool(auth_store)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = API_MAX_JSON_BYTES
    app.extensions["starledger"] = {"blockchain": blockchain, "pool": pool}

    @app.route("/", methods=["GET"])
    def index():
        return _error(404, "Check the README.md for the accepted endpoints")

    @app.route("/requestValidation", methods=["POST"])
    def request_validation():
        """Issue a challenge, or return the live one with its remaining window."""
        parsed, error = _parse_body(ValidationRequestInput)
        if error:
            return error
        try:
            record = pool.get_or_create_challenge(parsed.identity)
        except MalformedInputError as exc:
            return _error(422, exc.message)
        return jsonify(record.to_dict())

    @app.route("/message-signature/validate", methods=["POST"])
    def validate_signature():
        parsed, error = _parse_body(SignatureInput)
        if error:
            return error
        try:
            result = pool.verify_signature(parsed.identity, parsed.signature)
        except AuthorizationNotFoundError as exc:
            return _error(404, exc.message)
        status = 200 if result.authorized else 401
        return jsonify(result.to_dict()), status

    @app.route("/stars/address:<identity>", methods=["GET"])
    def get_stars_by_address(identity: str):
        blocks = blockchain.get_blocks_by_address(identity)
        return jsonify([block.to_dict() for block in blocks])

    @app.route("/stars/hash:<block_hash>", methods=["GET"])
    def get_star_by_hash(block_hash: str):
        block = blockchain.get_block_by_hash(block_hash)
        if block is None:
            return _error(404, "Block not found")
        return jsonify(block.to_dict())

    @app.route("/block/<height>", methods=["GET"])
    def get_block(height: str):
        try:
            height_int = int(height)
        except ValueError:
            return _error(400, "Block height must be an integer")
        block = blockchain.get_block(height_int)
        if block is None:
            return _error(404, "Block not found")
        return jsonify(block.to_dict())

    @app.route("/block", methods=["POST"])
    def add_block():
        """Append a registration; the identity's authorization is consumed on success."""
        parsed, error = _parse_body(RegistrationInput)
        if error:
            return error
        try:
            body = parsed.to_body()
        except MalformedInputError as exc:
            return jsonify({"errors": [{"msg": exc.message}]}), 422

        try:
            with pool.authorization(parsed.identity):
                block = blockchain.add_block(body)
        except UnauthorizedError as exc:
            return _error(401, exc.message, reason=exc.reason)
        except StorageError as exc:
            logger.error(
                "Block append failed",
                extra={"event": "api.append_failed", **get_error_context(exc)},
            )
            return _error(500, "There was an error generating a new block")
        return jsonify(block.to_dict()), 201

    @app.route("/chain/validate", methods=["GET"])
    def validate_chain():
        return jsonify(blockchain.validate_chain().to_dict())

    @app.errorhandler(413)
    def payload_too_large(_error_obj):
        return _error(413, "Request body too large")

    @app.errorhandler(StorageError)
    def storage_failure(exc: StorageError):
        logger.error(
            "Storage failure while serving %s",
            request.path,
            extra={"event": "api.storage_error", **get_error_context(exc)},
        )
        return _error(500, "Ledger storage error")

    return app
