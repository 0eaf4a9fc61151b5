import os

import requests
import streamlit as st

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


class ApiClient:
    def registrations(self, page: int = 1, limit: int = 50):
        return requests.get(f"{BASE_URL}/api/registrations", params={"page": page, "limit": limit}, timeout=120)

    def registration(self, registration_id: int):
        return requests.get(f"{BASE_URL}/api/registrations/{registration_id}", timeout=120)

    def comparison_options(self, registration_id: int):
        return requests.get(f"{BASE_URL}/api/registrations/{registration_id}/comparison-options", timeout=120)

    def report_pdf(self, registration_id: int, options: dict):
        return requests.post(f"{BASE_URL}/api/registrations/{registration_id}/report", json=options, timeout=600)

    def suggestions(self, registration_id: int):
        return requests.post(f"{BASE_URL}/api/registrations/{registration_id}/suggestions", timeout=300)

    def update_times(self, registration_id: int, times: dict):
        return requests.patch(f"{BASE_URL}/api/registrations/{registration_id}/times", json=times, timeout=120)

    def bill_pdf(self, registration_id: int):
        return requests.get(f"{BASE_URL}/api/registrations/{registration_id}/bill", timeout=300)

    def bills_pdf(self, registration_ids: list[int]):
        return requests.post(f"{BASE_URL}/api/bills", json={"registration_ids": registration_ids}, timeout=600)

    def bill_totals(self, registration_ids: list[int]):
        return requests.post(f"{BASE_URL}/api/bills/totals", json={"registration_ids": registration_ids}, timeout=120)


def error_message(res: requests.Response) -> str:
    try:
        return res.json().get("message") or res.text
    except ValueError:
        return res.text


# ---------------------------------------------------------------------------
# Cached data fetchers: unwrap the response envelope, cached for 60 seconds.
# ---------------------------------------------------------------------------

@st.cache_data(ttl=60, show_spinner=False)
def cached_registrations(page: int = 1, limit: int = 50) -> tuple[bool, dict]:
    res = ApiClient().registrations(page, limit)
    return res.ok, res.json().get("data", {}) if res.ok else {}


@st.cache_data(ttl=60, show_spinner=False)
def cached_registration(registration_id: int) -> tuple[bool, dict]:
    res = ApiClient().registration(registration_id)
    return res.ok, res.json().get("data", {}) if res.ok else {}


@st.cache_data(ttl=60, show_spinner=False)
def cached_comparison_options(registration_id: int) -> tuple[bool, dict]:
    res = ApiClient().comparison_options(registration_id)
    return res.ok, res.json().get("data", {}) if res.ok else {}
