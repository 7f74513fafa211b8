"""
Services Layer

Standings, tie-breaking and bracket promotion:
- Pure modules take value objects (MatchResult, TeamStanding, TemplateEntry) and never see a session
- match_source, bracket_writer and tie_notifications are the storage boundary
- promotion_service orchestrates a run and owns its transaction
- Nothing here depends on HTTP request/response objects
"""
