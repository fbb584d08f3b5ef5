# cli.py
import time
import json
import requests

import config

API_URL = config.API_URL
POLL_SECONDS = 0.5

ICONS = {
    "check_circle": "✅", "folder": "📁", "folder_open": "📂", "chat": "💬",
    "data_object": "🧩", "description": "📄", "sync": "🔄", "block": "⛔",
    "delete_sweep": "🧹", "cancel": "🛑", "error": "❌", "shield": "🛡",
}

def post(action, **payload):
    payload["action"] = action
    try:
        res = requests.post(API_URL, json=payload)
        res.raise_for_status()
        return res.json()
    except Exception as e:
        print("❌ Error:", e)
        return {}

def follow(job_id):
    """Print a job's events until it signals scan-done."""
    after = 0
    while True:
        data = post("events", jobId=job_id, after=after)
        if not data:
            return None
        for event in data.get("events", []):
            after = event["seq"]
            payload = event["payload"]
            if event["channel"] == "scan-log":
                print(f"{ICONS.get(payload['icon'], '•')} {payload['text']}")
            elif event["channel"] == "scan-progress":
                print(f"   ⏳ {payload['progress']}%")
            elif event["channel"] == "scan-done":
                return payload
        if data.get("done"):
            return None
        time.sleep(POLL_SECONDS)

def show_summary(summary):
    if not summary:
        print("❌ No summary available.")
        return
    print("\n📊 Scan Summary:")
    print(f"  🧩 Git repositories: {summary['git_repo_count']}")
    print(f"  📄 Documents: {summary['document_count']}")
    for c in summary.get("chat_locations", []):
        print(f"  💬 {c['application_name']}: {c['absolute_path']}")

def show_results(data):
    items = data.get("items", [])
    if not items:
        print("❌ No matching files found.")
        return
    print(f"\n🔍 Page {data['page']}/{data['total_pages']} ({data['total']} files):")
    for i, r in enumerate(items, 1):
        print(f"{i}. 📄 {r['file_path']}\n   📦 Type: {r['file_type']}  🏷 Source: {r['source']}  🕒 {r['modified_at']}\n")

def browse_results(project_id):
    q = input("🔎 Path contains (blank for all): ").strip()
    types = [t.strip() for t in input("📦 Types, comma separated (blank for all): ").split(",") if t.strip()]
    page = 1
    while True:
        data = post("results", projectId=project_id, page=page, pageSize=config.DEFAULT_PAGE_SIZE, q=q, types=types)
        if not data:
            return
        show_results(data)
        if page >= data.get("total_pages", 1):
            return
        if input("➡️  Next page? (y/n): ").strip().lower() != "y":
            return
        page += 1

def main():
    while True:
        print("\n📚 Project Scanner CLI")
        print("1. Summary Scan")
        print("2. Catalog Scan")
        print("3. Browse Results")
        print("4. Check Job Status")
        print("5. Exit")
        choice = input("👉 Choose (1-5): ").strip()

        if choice == "1":
            name = input("🗂 Project name: ").strip()
            time_range = input("🕒 Time range (past_week/past_month/past_year/blank): ").strip() or None
            res = post("scan", project=name, timeRange=time_range)
            if res.get("ok"):
                show_summary(follow(res["jobId"]))
            else:
                print("❌", res.get("error", ""))
        elif choice == "2":
            project_id = input("🆔 Project id: ").strip()
            res = post("scan-by-id", projectId=project_id)
            if res.get("ok"):
                follow(res["jobId"])
                print("✅ Catalog scan finished.")
            else:
                print("❌", res.get("error", ""))
        elif choice == "3":
            browse_results(input("🆔 Project id: ").strip())
        elif choice == "4":
            res = post("status", jobId=input("🆔 Job id: ").strip())
            print(json.dumps(res, indent=2))
        elif choice == "5":
            print("👋 Exiting CLI.")
            break
        else:
            print("❌ Invalid choice. Please try again.")

if __name__ == "__main__":
    main()
