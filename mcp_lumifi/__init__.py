"""
LumiFi Ledger Package Initialization

This package provides a minimal value-exchange ledger engine and the services that
expose it over the Model Context Protocol (MCP) and plain HTTP.

The package includes:
- Token registry with owner-authorized minting
- Time-boxed ICO sales with a global contribution ledger
- Custodial withdrawals bounded by the contract's live balance
- Fee-less constant-product liquidity pools
- Pluggable storage, authorization, asset-transfer and clock collaborators
- Custom error taxonomy with stable numeric codes
- MCP server and Flask read-only API
"""
