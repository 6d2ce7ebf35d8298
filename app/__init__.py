"""HTTP layer of the GPT quota proxy."""
