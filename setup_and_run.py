#!/usr/bin/env python3
"""
Video Engagement API Setup and Run Script

Prepares the environment, optionally seeds a few demo channels and videos,
and starts the API server.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

DEMO_USERS = [
    {"username": "techguru", "email": "techguru@example.com", "channel_name": "Tech Guru"},
    {"username": "cookingmaster", "email": "cooking@example.com", "channel_name": "Cooking Master"},
    {"username": "gamingpro", "email": "gaming@example.com", "channel_name": "Gaming Pro"},
]

DEMO_VIDEOS = [
    {
        "uploader": "techguru",
        "title": "React Tutorial for Beginners - Complete Course 2024",
        "description": "Learn React from scratch, from basic concepts to advanced patterns.",
        "category": "Education",
        "tags": ["react", "javascript", "tutorial", "web development"],
        "duration": 1800,
        "views": 15420,
    },
    {
        "uploader": "cookingmaster",
        "title": "How to Make Perfect Pasta Carbonara",
        "description": "Authentic Italian pasta carbonara, step by step.",
        "category": "Cooking",
        "tags": ["pasta", "carbonara", "italian", "cooking"],
        "duration": 900,
        "views": 8920,
    },
    {
        "uploader": "gamingpro",
        "title": "Minecraft Survival Guide - Episode 1",
        "description": "Start your Minecraft survival journey with this guide for beginners.",
        "category": "Gaming",
        "tags": ["minecraft", "survival", "gaming", "tutorial"],
        "duration": 2400,
        "views": 23450,
    },
]


def setup_environment():
    """Set up environment variables and configuration"""
    print("Setting up Video Engagement API environment...")

    db_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./engagement.db")
    os.environ["DATABASE_URL"] = db_url
    print(f"Database URL: {db_url}")

    os.environ.setdefault("PYTHONPATH", str(Path.cwd()))
    return True


async def seed_demo_data():
    """Create the demo channels and videos if they are not there yet"""
    from core.database import EngagementStore
    from core.models import VideoRecord
    from core.settings import Settings
    from main import build_service

    settings = Settings.from_env()
    store = EngagementStore(settings.database_url)
    await store.open()
    try:
        service = build_service(store, settings)
        user_ids = {}
        for user in DEMO_USERS:
            existing = await store.find_user(username=user["username"])
            if existing is not None:
                user_ids[user["username"]] = existing.id
                continue
            created = await service.create_user(**user)
            user_ids[user["username"]] = created.id

        if await store.list_videos(public_only=False):
            print("Videos already present, skipping video seed")
            return

        for video in DEMO_VIDEOS:
            video = dict(video)
            views = video.pop("views")
            uploader_id = user_ids[video.pop("uploader")]
            created = await service.create_video(uploader_id, **video)
            await store.increment(VideoRecord, created.id, "views", views)
        print(f"Seeded {len(DEMO_USERS)} users and {len(DEMO_VIDEOS)} videos")
    finally:
        await store.close()


def start_server():
    """Start the Video Engagement API server"""
    port = int(os.getenv("PORT", "8002"))
    print("Starting Video Engagement API server...")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"Health check endpoint: http://localhost:{port}/healthcheck")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    import uvicorn

    try:
        uvicorn.run(
            "main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=True,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")


def main():
    """Main setup and run function"""
    parser = argparse.ArgumentParser(description="Set up and run the Video Engagement API")
    parser.add_argument("--seed", action="store_true", help="create demo channels and videos")
    parser.add_argument("--no-serve", action="store_true", help="exit after setup")
    args = parser.parse_args()

    print("Video Engagement API - Setup and Run")
    print("=" * 40)

    script_dir = Path(__file__).parent
    os.chdir(script_dir)
    sys.path.insert(0, str(script_dir))
    print(f"Working directory: {script_dir}")

    if not setup_environment():
        print("Failed to setup environment")
        sys.exit(1)

    if args.seed:
        asyncio.run(seed_demo_data())

    if not args.no_serve:
        start_server()


if __name__ == "__main__":
    main()
