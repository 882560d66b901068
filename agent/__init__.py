"""
Agent — Conversational runtime of Deskmate.

Shared foundation for every support-desk agent:
- Session persistence and per-session serialisation
- Semantic (facts) and episodic (episodes) memory
- Keyword intent detection
- Ordered handler dispatch with generative fallback
- Post-hoc business-rule validation and correction of replies
"""
