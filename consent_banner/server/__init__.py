"""Host side of the banner — payload, markup, nonce-checked acknowledgement."""
