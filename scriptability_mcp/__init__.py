"""
ScriptAbility MCP server package.

This package exposes MCP tools for:
- SIG normalization
- NDC descriptor lookup
- Medcast podcast generation (background jobs with status polling)
- Pill image identification

Generated podcasts are stored locally or in a Firebase Storage bucket and
served over HTTP at `/files/medcast/{job_id}`.
"""
