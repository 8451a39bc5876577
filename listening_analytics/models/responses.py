"""Response models returned by the analytics API"""
from datetime import date
from typing import List
from pydantic import BaseModel, Field

class Recommendation(BaseModel):
    """One ranked recommendation for a user"""
    track_id: int = Field(description="Recommended track")
    title: str = Field(description="Track title")
    artist: str = Field(description="Name of the track's PRIMARY artist")
    score: int = Field(description="Co-listening score: summed overlap of similar users who played it")

class RefreshResult(BaseModel):
    """
    Outcome of recomputing the daily stats for one day.

    tracks_updated counts rows written, rows_pruned counts stale rows
    deleted when pruning was requested.
    """
    day: date
    tracks_updated: int = 0
    rows_pruned: int = 0

class PopularityDrift(BaseModel):
    """A track whose stored popularity disagreed with its like count"""
    track_id: int
    stored: int
    expected: int

class ReconciliationReport(BaseModel):
    """Result of a popularity reconciliation pass"""
    tracks_checked: int = 0
    drifts: List[PopularityDrift] = []

    @property
    def consistent(self) -> bool:
        return not self.drifts

class TopTrack(BaseModel):
    """Play count of a track among listeners of one country"""
    country: str
    track_id: int
    title: str
    plays: int
