"""Example: build a deck through a running Slidefox API and export it to PDF.

Prerequisites:
- Start the API: python -m slidefox (with config.yaml pointing at the agent runtime)
"""

import asyncio

from slidefox.client import DeckTracker, SlidefoxClient
from slidefox.core.history import JsonFileStorage, SessionHistory
from slidefox.settings import get_config


async def create_presentation(topic: str):
    """Create a presentation on the given topic.

    Args:
        topic: The subject matter for the presentation
    """
    config = get_config()
    history = SessionHistory(JsonFileStorage(config.server.history_path))
    client = SlidefoxClient(f"http://localhost:{config.server.port}", history=history)

    try:
        session_id = await client.create_session(theme="modern")
        print(f"🎨 Creating presentation about: {topic} (session {session_id})")
        print("-" * 50)

        tracker = DeckTracker(
            client,
            session_id,
            image_tool_name=config.runtime.image_tool_name,
            streaming_delay=config.refetch.streaming_delay,
            settled_delay=config.refetch.settled_delay,
        )
        await tracker.send(f"Create a 5-slide deck about {topic}")
        await tracker.wait_for_refetch()

        if tracker.error:
            print(f"❌ {tracker.error.message}")
            return

        print(tracker.messages[-1].text)
        print("-" * 50)
        for slide in tracker.slides:
            print(f"Slide {slide.slot}: {slide.content.headline} [{slide.status}]")

        image_urls = [slide.image_url for slide in tracker.slides if slide.image_url]
        if image_urls:
            pdf = await client.export_pdf(image_urls)
            with open("presentation.pdf", "wb") as f:
                f.write(pdf)
            print(f"✅ Exported {len(image_urls)} slides to presentation.pdf")

        await tracker.close()
    finally:
        await client.close()


async def main():
    await create_presentation("The Future of Artificial Intelligence in Healthcare")


if __name__ == "__main__":
    asyncio.run(main())
