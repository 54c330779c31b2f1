"""Confidential processing layer.

Everything that touches plaintext consultations outside this process lives here:
encryption at rest, opaque record storage and the confidential LLM node.
- Payloads (queries, prompts, completions, records) are never logged.
- One shared client per process, see `provider.py`.
"""
