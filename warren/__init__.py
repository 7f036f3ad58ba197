"""Warren — per-conversation agent processes with a file mailbox and framed output."""
