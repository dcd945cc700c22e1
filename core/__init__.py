"""
Research Lineage core package.

Modules
───────
models     — Pydantic data models (Article, DiscoveryResult, Session, …)
prompts    — per-stage instruction/prompt compilation
recovery   — brace-bounded JSON recovery from model output
context    — chat context built from a discovery result
transport  — Claude / Gemini model transports
pipeline   — discovery, timeline, review stages + ResearchOrchestrator
chat       — follow-up conversation about one session
history    — bounded, persisted session history
export     — markdown export of a session
"""
