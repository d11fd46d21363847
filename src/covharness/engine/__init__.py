"""Harness components: codec, transform boundary, sandbox, verifier, cases."""
