"""studyroom quickstart: two study partners sharing a room.

Run with:
    uv run python examples/quickstart.py
"""

from __future__ import annotations

import asyncio
import logging

from studyroom import InMemoryChangeFeed, InMemoryStore, StudyRoomClient


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # --- Setup -----------------------------------------------------------
    # One store and change feed stand in for the hosted backend; each client
    # is a separate device with its own local storage.
    feed = InMemoryChangeFeed()
    store = InMemoryStore(feed)
    alice = StudyRoomClient(store=store, feed=feed)
    bob = StudyRoomClient(store=store, feed=feed)
    await alice.start()
    await bob.start()

    alice.identity.set_guest_name("Alice")
    await bob.identity.sign_up("bob@example.com", "hunter22")

    # --- Create and join -------------------------------------------------
    room = await alice.create_room("Thesis sprint")
    print(f"Share this code: {room.code}")

    await alice.join_room(room.code)
    await bob.join_room(room.code.upper())
    await asyncio.sleep(0.01)

    print("In the room:", [p.name for p in alice.membership.participants])

    # --- Chat, tasks and the shared timer ---------------------------------
    await bob.chat.send_message("Morning! Starting on chapter 2.")
    await bob.tasks.add_task("Outline chapter 2")
    await bob.tasks.add_task("Fix citations")

    alice.timer.set_duration_input("45")
    await alice.timer.flush_duration()
    await alice.toggle_timer()
    await asyncio.sleep(0.01)
    await bob.timer.tick()

    print(f"Bob sees {bob.timer.formatted_time} on the clock")
    for message in alice.chat.visible_messages:
        print(f"  [{message.message_type}] {message.content}")
    print("Bob's tasks:", [t.content for t in alice.tasks.tasks])

    # --- Leave -----------------------------------------------------------
    await bob.close()
    await asyncio.sleep(0.01)
    print("Still here:", [p.name for p in alice.membership.participants])
    await alice.close()


if __name__ == "__main__":
    asyncio.run(main())
