"""Shared bundles and fakes for the report export tests."""
import datetime as dt
import io

import pytest
from PIL import Image


@pytest.fixture
def quantity_data():
    return {
        "summary": {"total": 12, "completed": 5, "inProgress": 4, "notStarted": 3, "completionPercentage": 41.7},
        "statusData": [
            {"name": "Completed", "value": 5},
            {"name": "In Progress", "value": 4},
            {"name": "Not Started", "value": 3},
        ],
        "sections": [
            {"number": "A", "title": "Preliminaries", "totalItems": 4, "completedItems": 2, "progress": 50},
            {"number": "B", "title": "Earthworks", "totalItems": 8, "completedItems": 3, "progress": 37.5},
        ],
        "items": [
            {"number": f"B.{i}", "description": f"Excavation lot {i}", "quantity": 1234.5,
             "quantityDone": 600, "unit": "m3", "percentageComplete": 48.6}
            for i in range(1, 6)
        ],
    }


@pytest.fixture
def claims_data():
    return {
        "claim": {"claimNumber": "PC-03"},
        "summary": {"totalClaimed": 250000, "totalCertified": 180000.5, "balance": 69999.5},
        "totalClaims": 3,
        "avgProcessingTime": 12.4,
        "statusData": [{"name": "Approved", "value": 2}, {"name": "Submitted", "value": 1}],
        "monthlyTrend": [
            {"month": "Jan 2025", "count": 1, "amount": 50000},
            {"month": "Feb 2025", "count": 2, "amount": 200000},
        ],
        "items": [
            {"number": "1", "description": "Piling", "claimedAmount": 1234.5, "certifiedAmount": 1000, "status": "approved"},
        ],
        "allClaims": [
            {"claimNumber": "PC-01", "title": "Progress claim 1", "submissionDate": "2025-01-15",
             "claimAmount": 50000, "status": "approved"},
            {"claimNumber": "PC-02", "title": "Progress claim 2", "submissionDate": "2025-02-10",
             "claimAmount": 120000, "status": "submitted"},
        ],
    }


@pytest.fixture
def financial_data():
    return {
        "statistics": {"totalClaims": 2, "totalClaimAmount": 170000, "totalPaid": 90000,
                       "totalRetention": 8500, "contractValue": 1500000, "progressPercentage": 11.3},
        "cumulativeData": [
            {"date": "2025-01-15", "cumulative": 50000},
            {"date": "2025-02-10", "cumulative": 170000},
        ],
        "monthlyBreakdown": [
            {"month": "Jan 2025", "count": 1, "amount": 50000},
            {"month": "Feb 2025", "count": 1, "amount": 120000},
        ],
        "paymentTimeline": [
            {"claimNumber": "PC-01", "claimDate": "2025-01-15", "amount": 50000, "certified": 48000,
             "retention": 2400, "status": "paid"},
        ],
    }


@pytest.fixture
def diary_data():
    return {
        "statistics": {"totalDiaries": 3, "totalPhotos": 14, "issuesCount": 1,
                       "weatherDistribution": {"Sunny": 2, "Rainy": 1}},
        "manpowerSummary": {
            "Carpenter": {"avgWorkers": 4.5, "totalWorkers": 9},
            "Steel fixer": {"avgWorkers": 3, "totalWorkers": 6},
        },
        "diaries": [
            {"date": "2025-03-01", "weather": "Sunny", "temperature": 31, "manpower": 12, "photoCount": 5, "status": "submitted"},
            {"date": "2025-03-02", "weather": "Rainy", "temperature": 27, "manpower": 8, "photoCount": 4, "status": "draft"},
            {"date": "2025-03-03", "weather": "Sunny", "temperature": 32, "manpower": 11, "photoCount": 5, "status": "approved"},
        ],
    }


@pytest.fixture
def bundles(quantity_data, claims_data, financial_data, diary_data):
    return {
        "quantity": quantity_data,
        "claims": claims_data,
        "financial": financial_data,
        "diary": diary_data,
    }


@pytest.fixture
def today():
    return dt.date(2025, 3, 14)


def _png(size=(60, 40)):
    bio = io.BytesIO()
    Image.new("RGB", size, "white").save(bio, format="PNG")
    return bio.getvalue()


class FakeRasterizer:
    """Records every spec it is asked to draw and returns a tiny PNG."""

    def __init__(self):
        self.calls = []

    def __call__(self, spec):
        self.calls.append(spec)
        return _png()


@pytest.fixture
def fake_rasterizer():
    return FakeRasterizer()


@pytest.fixture
def small_png():
    return _png()


@pytest.fixture
def square_png():
    return _png((50, 50))


@pytest.fixture
def events():
    """Observer that collects ExportEvent values in order."""
    collected = []

    def observer(event):
        collected.append(event)

    observer.events = collected
    return observer
