"""
Read-only HTTP API over ledger state.

A small Flask application serving the same views as the MCP server's view tools,
for dashboards and explorers that speak plain HTTP:

    GET /tokens/<owner>
    GET /icos/<ico_id>
    GET /contributions/<account>
    GET /pools/<symbol>
    GET /pools/<symbol>/quote?amount=<reference_in>

Nothing here mutates the ledger.
"""
from typing import Any, Dict, Tuple

from flask import Flask, jsonify, request

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi import config
from mcp_lumifi import server
from mcp_lumifi.errors import (
    ICONotFoundError,
    InvalidAmountError,
    LumiFiError,
    TokenNotFoundError,
    ValidationError,
)

logger = get_logger(__name__)

app = Flask(__name__)

NOT_FOUND_ERRORS = (TokenNotFoundError, ICONotFoundError)


def get_cors_headers(origin: str) -> Dict[str, str]:
    """Get CORS headers with origin validation."""
    allowed_origin = "*"
    if "*" not in config.CORS_ALLOWED_ORIGINS:
        if origin in config.CORS_ALLOWED_ORIGINS:
            allowed_origin = origin
        else:
            allowed_origin = config.CORS_ALLOWED_ORIGINS[0] if config.CORS_ALLOWED_ORIGINS else "null"

    return {
        'Access-Control-Allow-Origin': allowed_origin,
        'Access-Control-Allow-Methods': 'GET, OPTIONS',
        'Access-Control-Allow-Headers': 'Content-Type',
        'Access-Control-Max-Age': '3600',
    }


def _respond(view, *args) -> Tuple[Any, int, Dict[str, str]]:
    """Runs a ledger view and maps ledger errors to HTTP status codes."""
    cors_headers = get_cors_headers(request.headers.get('Origin', '*'))
    try:
        return jsonify(view(*args)), 200, cors_headers
    except NOT_FOUND_ERRORS as e:
        return jsonify({"error": e.kind, "message": str(e)}), 404, cors_headers
    except (ValidationError, InvalidAmountError) as e:
        return jsonify({"error": "InvalidInput", "message": str(e)}), 400, cors_headers
    except LumiFiError as e:
        return jsonify({"error": e.kind, "message": str(e)}), 409, cors_headers
    except Exception as e:
        logger.exception(f"Unexpected error in HTTP API: {e}")
        return jsonify({"message": "An unexpected server error occurred"}), 500, cors_headers


@app.route('/tokens/<owner>', methods=['GET'])
def get_token(owner: str):
    return _respond(lambda: server.ledger.get_token(owner).model_dump(mode="json"))


@app.route('/icos/<ico_id>', methods=['GET'])
def get_ico(ico_id: str):
    return _respond(lambda: server.ledger.get_ico(ico_id).model_dump(mode="json"))


@app.route('/contributions/<account>', methods=['GET'])
def get_contribution(account: str):
    return _respond(lambda: {"account": account, "contribution": server.ledger.get_contribution(account)})


@app.route('/pools/<symbol>', methods=['GET'])
def get_pool(symbol: str):
    def view():
        token_reserve, reference_reserve = server.ledger.get_reserves(symbol)
        return {"pool": symbol, "token_reserve": token_reserve, "reference_reserve": reference_reserve}
    return _respond(view)


@app.route('/pools/<symbol>/quote', methods=['GET'])
def quote(symbol: str):
    def view():
        amount = request.args.get("amount", type=int)
        if amount is None:
            raise ValidationError("Query parameter 'amount' must be an integer")
        return {"pool": symbol, "amount_in": amount, "token_out": server.ledger.quote_swap(symbol, amount)}
    return _respond(view)


if __name__ == '__main__':
    logger.info(f"Starting LumiFi HTTP API on port {config.ACTIONS_PORT}...")
    app.run(host='0.0.0.0', port=config.ACTIONS_PORT)
