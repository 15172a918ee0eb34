"""Count stream: push-channel transport, message parsing, frame consumer."""
