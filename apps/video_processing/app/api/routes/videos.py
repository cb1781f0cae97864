from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...domain.transcripts import Transcript
from ...domain.videos import Video, VideoListResponse
from ...repositories.transcripts import TranscriptsRepository
from ...repositories.videos import VideosRepository
from ..dependencies import get_transcripts_repository, get_videos_repository

router = APIRouter(tags=["videos"])


@router.get("/videos", response_model=VideoListResponse, response_model_by_alias=True)
async def list_videos(
    limit: int = Query(default=20, ge=1, le=100),
    videos_repo: VideosRepository = Depends(get_videos_repository),
) -> VideoListResponse:
    videos = await videos_repo.list_recent(limit)
    return VideoListResponse(data=videos, count=len(videos))


@router.get("/videos/{video_id}", response_model=Video, response_model_by_alias=True)
async def get_video(
    video_id: str,
    videos_repo: VideosRepository = Depends(get_videos_repository),
) -> Video:
    video = await videos_repo.get(video_id)
    if video is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return video


@router.get(
    "/videos/{video_id}/transcripts/{transcript_id}",
    response_model=Transcript,
    response_model_by_alias=True,
)
async def get_transcript(
    video_id: str,
    transcript_id: str,
    transcripts_repo: TranscriptsRepository = Depends(get_transcripts_repository),
) -> Transcript:
    transcript = await transcripts_repo.get(video_id, transcript_id)
    if transcript is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Transcript not found"
        )
    return transcript
