"""
Tiered score storage engine for game leaderboards.

- Hot tier: Redis sorted sets for recent, ranked reads
- Cold tier: SQL table holding the full score history
- HybridScoreStorage: routes reads, dual-writes, migrates and enforces retention
"""
