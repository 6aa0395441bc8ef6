"""ProfileScout - person research from the command line.

Runs a single research job directly, without the queue.
"""

import argparse
import asyncio
import json

from profile_scout.agents.orchestrator import ResearchOrchestrator
from profile_scout.browser.session import PlaywrightSession
from profile_scout.config import settings
from profile_scout.llm_client import get_client
from profile_scout.models.schemas import ProfileInput
from profile_scout.services.logger import setup_logging


async def run_research(profile: ProfileInput, model: str | None = None):
    """Research one person and print progress as it happens."""
    print(f"Researching: {profile.name}")
    print("-" * 50)

    run_settings = settings.model_copy(update={"openrouter_model": model}) if model else settings
    llm = get_client(run_settings)
    try:
        async with PlaywrightSession(run_settings, llm) as session:
            orchestrator = ResearchOrchestrator(settings=run_settings, llm=llm, session=session)

            async for event in orchestrator.run(profile):
                event_type = event.event.value
                data = event.data

                if event_type == "plan_created":
                    print(f"\n[*] Research Plan:\n{data.get('plan', '')}")

                elif event_type == "iteration_started":
                    print(f"\n[~] Iteration {data.get('iteration')}/{data.get('max_iterations')}")

                elif event_type == "action_parsed":
                    print(f"  [>] {data.get('action')}")

                elif event_type == "action_skipped":
                    print(f"  [-] skipped: {data.get('reason')}")

                elif event_type == "search_result":
                    print(f"  [+] {data.get('new_results')} new results for '{data.get('query')}'")

                elif event_type == "navigation_result":
                    print(f"  [+] {data.get('outcome')}: {data.get('url')}")

                elif event_type == "contact_found":
                    print(f"  [*] Contact found on {data.get('url')}")

                elif event_type == "finding_accepted":
                    print(f"  [+] Finding from {data.get('source')} ({data.get('confidence')})")

                elif event_type == "follow_up_started":
                    print(f"\n[~] Follow-up searches: {', '.join(data.get('queries', []))}")

                elif event_type == "synthesis_started":
                    print("\n[+] Synthesizing profile...")

                elif event_type == "research_complete":
                    print("\n\n[*] Research Complete!")
                    print(f"   Runtime: {data.get('runtime_ms')}ms")
                    print(f"   Stopped: {data.get('stop_reason')}")
                    print(f"\n{'='*50}")
                    print("PROFILE:")
                    print(f"{'='*50}")
                    print(json.dumps(data.get("result", {}), indent=2))

                elif event_type == "error":
                    print(f"\n[!] Error: {data.get('message', 'Unknown error')}")
    finally:
        await llm.close()


def main():
    parser = argparse.ArgumentParser(description="ProfileScout person research")
    parser.add_argument("name", help="Full name of the person to research")
    parser.add_argument("--context", "-c", help="Company, role or other context")
    parser.add_argument(
        "--interests", "-i", help="Comma-separated interests to match against profiles"
    )
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")

    args = parser.parse_args()
    interests = [item for item in (args.interests or "").split(",") if item.strip()]
    profile = ProfileInput(name=args.name, context=args.context, interests=interests or None)

    setup_logging(settings)
    asyncio.run(run_research(profile, args.model))


if __name__ == "__main__":
    main()
