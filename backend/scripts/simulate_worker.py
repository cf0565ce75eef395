"""Play the transcode worker against a running API.

Walks every quality of one asset through pending -> processing -> completed,
sending the same progress and completion webhooks the real worker sends.
Qualities finish worst-first, so the asset becomes viewable after 240p.

Usage:
    python scripts/simulate_worker.py <asset_id> [--api http://localhost:8000/api/v1]
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from dashworld.modules.transcoding.models import QUALITY_SET

WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")


async def simulate(api: str, asset_id: str, output_base_path: str, step_delay: float) -> None:
    headers = {"X-Webhook-Secret": WEBHOOK_SECRET}

    async with httpx.AsyncClient(base_url=api, headers=headers, timeout=10.0) as client:
        for quality in reversed(QUALITY_SET):
            label = quality.value
            print(f"Encoding {label}...")

            for progress in (0, 25, 50, 75, 100):
                status = "processing" if progress < 100 else "completed"
                response = await client.put(
                    "/webhooks/transcode/progress",
                    json={
                        "asset_id": asset_id,
                        "quality": label,
                        "progress": progress,
                        "status": status,
                    },
                )
                response.raise_for_status()
                print(f"  {label}: {progress}% ({status})")
                await asyncio.sleep(step_delay)

            response = await client.post(
                "/webhooks/transcode/video-processed",
                json={
                    "asset_id": asset_id,
                    "status": "processing",
                    "renditions": {label: f"{output_base_path}/{label}.mp4"},
                },
            )
            response.raise_for_status()
            print(f"✓ {label} materialized")

        response = await client.post(
            "/webhooks/transcode/video-processed",
            json={"asset_id": asset_id, "status": "completed"},
        )
        response.raise_for_status()

        status = (await client.get(f"/footage/{asset_id}/status")).json()
        print()
        print(f"Overall progress: {status['overall_progress']}%")
        print(f"Complete: {status['is_complete']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate the transcode worker")
    parser.add_argument("asset_id")
    parser.add_argument("--api", default="http://localhost:8000/api/v1")
    parser.add_argument("--output-base-path", default="renditions")
    parser.add_argument("--step-delay", type=float, default=0.5)
    args = parser.parse_args()

    try:
        asyncio.run(simulate(args.api, args.asset_id, args.output_base_path, args.step_delay))
    except httpx.HTTPError as e:
        print(f"✗ Worker simulation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
