"""Model provider access and the LLM-backed codegen strategies."""
