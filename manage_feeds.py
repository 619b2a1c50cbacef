#!/usr/bin/env python3
"""
Interactive editor for saved feeds.

Each feed has:
    URL     : str   source .ics / webcal link
    Summary : str   title given to every workday event (default from SUMMARY)

Run the script, then choose:
    1) Add    – save a new feed and build its calendar right away
    2) List   – show saved feeds and their ids
    3) Delete – remove a saved feed
    4) Exit
"""

import logging
import sys

from feed_store import FeedStore
from refresh_feeds import generate_feed
from settings import load_settings


def prompt_non_empty(label):
    while True:
        value = input(f"{label}: ").strip()
        if value:
            return value
        print("Value cannot be blank – please try again.")


def list_entries(store):
    entries = store.all()
    if not entries:
        print("No saved feeds.\n")
        return entries
    for idx, item in enumerate(entries, start=1):
        print(f"{idx}) {item['uniqueId']}  {item.get('summary', '')}  {item.get('url', '')}")
        print(f"   last updated {item.get('lastUpdated', 'never')}")
    print()
    return entries


def add_entry(store, cfg):
    print("\nAdd new feed")
    url = prompt_non_empty("URL")
    summary = input(f"Summary [{cfg.summary}]: ").strip() or cfg.summary
    try:
        entry = generate_feed(url, summary, cfg, store)
    except Exception as e:
        print(f"❌ Could not build calendar: {e}\n")
        return None
    print(f"✅ Added {entry['uniqueId']}.\n")
    return entry


def delete_entry(store):
    entries = list_entries(store)
    if not entries:
        return
    try:
        choice = int(input("Select number to delete (0 to cancel): "))
    except ValueError:
        print("Not a number.\n")
        return
    if choice == 0:
        return
    if 1 <= choice <= len(entries):
        store.delete(entries[choice - 1]["uniqueId"])
        print("🗑️  Deleted.\n")
    else:
        print("Number out of range.\n")


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    cfg = load_settings()
    store = FeedStore(cfg.feeds_file)
    while True:
        print("Main menu")
        print("1) Add")
        print("2) List")
        print("3) Delete")
        print("4) Exit")
        selection = input("Select: ").strip()
        if selection == "1":
            add_entry(store, cfg)
        elif selection == "2":
            list_entries(store)
        elif selection == "3":
            delete_entry(store)
        elif selection == "4":
            print("👋  Goodbye!")
            sys.exit(0)
        else:
            print("Unknown option.\n")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nInterrupted.")
