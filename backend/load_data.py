"""
Data Loader Script - registers sample answer sheets through the API.

Expects the demo dataset to be seeded first (python -m answerdesk.seed).
Each sample carries scan analysis figures, so registration exercises
automatic flag detection; a summary of the flags raised is printed.

Usage:
    python load_data.py                              # Uses default URL
    python load_data.py http://localhost:8000         # Custom API URL
"""

import os
import sys

import httpx

from answerdesk.seed import EXAM_ID, STUDENTS, TEACHER_ID

SAMPLES = [
    {"roll_number_detected": "10A01", "roll_number_confidence": 96, "scan_quality": "EXCELLENT",
     "file_size": 850_000, "file_format": "application/pdf"},
    {"roll_number_detected": "10A02", "roll_number_confidence": 55, "scan_quality": "FAIR",
     "is_aligned": False, "file_size": 1_200_000, "file_format": "image/jpeg"},
    {"roll_number_detected": None, "scan_quality": "UNREADABLE",
     "file_size": 14_000_000, "file_format": "image/tiff"},
]


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    headers = {"X-User-Id": TEACHER_ID}

    print(f"Registering {len(SAMPLES)} answer sheets at {api_url}")
    print("=" * 60)

    with httpx.Client(base_url=api_url, headers=headers, timeout=30.0) as client:
        for (student_id, name, _), sample in zip(STUDENTS, SAMPLES):
            payload = {
                "exam_id": EXAM_ID,
                "student_id": student_id,
                "original_file_name": f"{name.lower().replace(' ', '_')}.pdf",
                **sample,
            }
            resp = client.post("/api/answer-sheets", json=payload)
            body = resp.json()
            if resp.status_code != 201:
                print(f"  ❌ {name}: {body.get('error', resp.status_code)}")
                continue
            flags = body["data"]["flags"]
            summary = ", ".join(f"{f['type']}/{f['severity']}" for f in flags) or "no flags"
            print(f"  ✅ {name}: {summary}")

        stats = client.get(f"/api/exams/{EXAM_ID}/flag-statistics").json()["data"]

    print("=" * 60)
    print(f"  Total flags:      {stats['total_flags']}")
    print(f"  Critical flags:   {stats['critical_flags']}")
    print(f"  Unresolved flags: {stats['unresolved_flags']}")
    print("=" * 60)


if __name__ == "__main__":
    main()
