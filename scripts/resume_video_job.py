#!/usr/bin/env python3
"""
Resume Video Job
----------------
Finishes a video job whose HeyGen render outlived the poll budget (or whose
worker died) without submitting a new render and without charging again.

The HeyGen video id is read from the job's metadata. With --video-url the
given URL is downloaded directly and polling is skipped; the job must still
have a recorded video id, so a job that was never charged cannot be finished.

Usage:
    python scripts/resume_video_job.py <account_id> <job_id> [--profile-id ID] [--video-url URL]
"""
import argparse
import sys

from scoutreel.db import DatabaseError, init_db
from scoutreel.exceptions import LedgerError
from scoutreel.services.dispatch_service import JobDispatcher


def main() -> int:
    parser = argparse.ArgumentParser(description="Resume a video generation job.")
    parser.add_argument("account_id", help="Owner of the job (token subject)")
    parser.add_argument("job_id", help="Job to resume")
    parser.add_argument("--profile-id", help="Profile to attach the video to (default: from job metadata)")
    parser.add_argument("--video-url", help="Direct video URL; skips polling HeyGen")
    args = parser.parse_args()

    try:
        init_db()
        dispatcher = JobDispatcher()
        print(f"[resume_video_job] Resuming {args.job_id} for {args.account_id}")
        result = dispatcher.resume_video_generation(
            args.account_id,
            args.job_id,
            profile_id=args.profile_id,
            video_url=args.video_url,
        )
    except (LedgerError, DatabaseError, ValueError) as exc:
        print(f"[resume_video_job] ERROR: {exc}")
        return 1

    video = result.get("video")
    if video:
        print(f"[resume_video_job] Done: {video['download_url']}")
    else:
        print(f"[resume_video_job] Job is already {result['status']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
