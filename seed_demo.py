# seed_demo.py
import os

import requests

BASE_URL = os.getenv("SHELFS_BASE_URL", "http://localhost:5000")
SERVICE_API_KEY = os.getenv("SERVICE_API_KEY", "dev-service-key")

BOOKS = [
    {
        "isbn": "978-0132350884",
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "publisher": "Prentice Hall",
    },
    {
        "isbn": "978-0201616224",
        "title": "The Pragmatic Programmer",
        "author": "Andrew Hunt, David Thomas",
        "publisher": "Addison-Wesley",
    },
    {
        "isbn": "978-0131103627",
        "title": "The C Programming Language",
        "author": "Brian W. Kernighan, Dennis M. Ritchie",
        "publisher": "Prentice Hall",
    },
    {
        "isbn": "978-0134685991",
        "title": "Effective Java",
        "author": "Joshua Bloch",
        "publisher": "Addison-Wesley",
    },
    {
        "isbn": "978-1491950357",
        "title": "Designing Data-Intensive Applications",
        "author": "Martin Kleppmann",
        "publisher": "O'Reilly Media",
    },
]

USERS = [
    {"username": "alice", "email": "alice@example.com", "password": "alice-pass"},
    {"username": "bob", "email": "bob@example.com", "password": "bob-pass"},
]

HEADERS = {"X-API-Key": SERVICE_API_KEY}


def check_service(url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {health_url} -> {r.status_code}")
        return r.ok
    except Exception as e:
        print(f"[ERROR] service not reachable at {health_url}: {e}")
        return False


def seed_books():
    print("\n== Seeding book definitions and items ==")
    for i, book in enumerate(BOOKS, start=1):
        try:
            resp = requests.post(
                f"{BASE_URL}/api/books", headers=HEADERS, json=book, timeout=5
            )
            print(f"  [{i:02}] {book['title']} -> {resp.status_code}")
            if not resp.ok:
                print(f"      Body: {resp.text.strip()}")
                continue
            definition_id = resp.json()["id"]
        except Exception as e:
            print(f"  [{i:02}] {book['title']} -> FAILED: {e}")
            continue

        # vary copies per title to make availability more interesting
        for copy in range(1, 2 + (i % 3)):
            barcode = f"BC-{i:02}-{copy:02}"
            resp = requests.post(
                f"{BASE_URL}/api/books/items",
                headers=HEADERS,
                json={"barcode": barcode, "book_definition_id": definition_id},
                timeout=5,
            )
            print(f"      item {barcode} -> {resp.status_code}")


def seed_users():
    print("\n== Seeding users ==")
    for u in USERS:
        try:
            resp = requests.post(
                f"{BASE_URL}/api/users", headers=HEADERS, json=u, timeout=5
            )
            print(f"  {u['username']}: {resp.status_code} {resp.text.strip()}")
        except Exception as e:
            print(f"  {u['username']}: FAILED -> {e}")


def main():
    print("Checking Shelfs API...")
    if not check_service(BASE_URL):
        print(f"\nService is not reachable at {BASE_URL}.")
        return

    seed_books()
    seed_users()

    print("\nDone.")
    print("Try hitting:")
    print(f"  {BASE_URL}/api/books/items")
    print(f"  {BASE_URL}/api/loans/active")


if __name__ == "__main__":
    main()
