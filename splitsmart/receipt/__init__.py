"""Receipt payload handling: AI answer normalization, JSON encoding, text output, image prep."""
