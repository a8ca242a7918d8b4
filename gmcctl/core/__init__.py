"""Protocol core: framing, session, configuration mirror and history decoding."""
