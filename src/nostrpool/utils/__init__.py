"""Nostr key loading and WebSocket transport.

The utils layer sits in the middle of the diamond DAG, depending only on
[nostrpool.models][nostrpool.models]. It provides the I/O primitives the
core layer composes.

Attributes:
    keys: Signing key loading from environment variables (nsec1 bech32 or
        hex format) with Pydantic validation. Used by the pool to answer
        NIP-42 challenges.
    transport: The ``Connector``/``Connection`` protocols and their aiohttp
        implementation. Clearnet tries verified SSL first and falls back to
        insecure if cert errors and ``allow_insecure=True``. Overlay
        networks (Tor/I2P/Lokinet) require ``proxy_url``.

Note:
    The utils layer has **zero** imports from ``nostrpool.core``.

Examples:
    ```python
    from nostrpool.utils.keys import KeysConfig
    from nostrpool.utils.transport import TransportConfig, WebSocketConnector
    ```
"""
