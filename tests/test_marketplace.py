"""
test_marketplace.py - response shaping, bid rules, stats summary
"""

from datetime import datetime, timedelta, timezone

import pytest
from beanie import PydanticObjectId

from app.core.marketplace import (
    BidRejected,
    build_asset_bundle,
    nft_to_response,
    page_info,
    parse_price,
    summarize_marketplace,
    validate_bid,
)
from app.models.auction import Auction
from app.models.nft import NFT, NFTAssets

# =============================================================================
# Response helpers
# =============================================================================


class TestNftToResponse:
    def test_token_id_falls_back_to_reserved(self, db):
        nft = NFT(
            id=PydanticObjectId(),
            name="Ape",
            description="d",
            price="2",
            creator="0x1",
            owner="0x1",
            reserved_token_id="5",
            assets=NFTAssets(files=["https://cdn/x.png"], preview_url="https://cdn/x.png"),
        )

        response = nft_to_response(nft)

        assert response.token_id == "5"
        assert response.image == "https://cdn/x.png"
        assert response.contract_address == ""
        assert response.last_sale == "2"
        assert response.collection == "Uncategorized"

    def test_minted_token_id_wins(self, db):
        nft = NFT(
            id=PydanticObjectId(),
            name="Ape",
            description="d",
            price="2",
            creator="0x1",
            owner="0x2",
            token_id="9",
            reserved_token_id="9",
            minted=True,
            is_lazy_minted=False,
            last_sale="3",
        )

        response = nft_to_response(nft)

        assert response.token_id == "9"
        assert response.last_sale == "3"
        assert response.minted is True

    def test_missing_ids_render_as_zero(self, db):
        nft = NFT(id=PydanticObjectId(), name="n", description="d", price="1", creator="c", owner="c")

        assert nft_to_response(nft).token_id == "0"


def test_page_info():
    assert page_info(skip=0, limit=20, total=45) == {"page": 1, "total_pages": 3}
    assert page_info(skip=40, limit=20, total=45) == {"page": 3, "total_pages": 3}
    assert page_info(skip=0, limit=20, total=0) == {"page": 1, "total_pages": 0}


class TestBuildAssetBundle:
    def test_files_take_precedence(self):
        nft_in = NFT.Create(
            name="n", description="d", price="1", creator="c",
            files=["https://cdn/a.glb", "https://cdn/b.png"], asset_file="https://cdn/ignored",
        )

        bundle = build_asset_bundle(nft_in)

        assert bundle["files"] == ["https://cdn/a.glb", "https://cdn/b.png"]
        assert bundle["preview_url"] == "https://cdn/a.glb"
        assert bundle["metadata"]["name"] == "n"

    def test_single_asset_and_explicit_preview(self):
        nft_in = NFT.Create(
            name="n", description="d", price="1", creator="c",
            asset_file="https://cdn/a.mp4", preview_image_url="https://cdn/p.png",
            attributes=[{"trait_type": "eyes", "value": "red"}, {"trait_type": "", "value": "x"}],
        )

        bundle = build_asset_bundle(nft_in)

        assert bundle["files"] == ["https://cdn/a.mp4"]
        assert bundle["preview_url"] == "https://cdn/p.png"
        assert bundle["metadata"]["attributes"] == [{"trait_type": "eyes", "value": "red"}]


@pytest.mark.parametrize("raw, expected", [("1.5", 1.5), (2, 2.0), ("x", None), (None, None), ("nan", None)])
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


# =============================================================================
# Bids
# =============================================================================


def _auction(**overrides) -> Auction:
    now = datetime.now(timezone.utc)
    fields = {
        "nft_id": PydanticObjectId(),
        "seller": "0xseller",
        "starting_price": 1.0,
        "end_time": now + timedelta(hours=1),
    }
    fields.update(overrides)
    return Auction(**fields)


class TestValidateBid:
    def test_accepts_bid_above_current_and_start(self, db):
        validate_bid(_auction(current_bid=1.5), 2.0)

    def test_rejects_bid_not_above_current(self, db):
        with pytest.raises(BidRejected, match="higher than current bid"):
            validate_bid(_auction(current_bid=2.0), 2.0)

    def test_rejects_bid_below_starting_price(self, db):
        with pytest.raises(BidRejected, match="starting price"):
            validate_bid(_auction(starting_price=5.0), 4.0)

    def test_rejects_ended_auction(self, db):
        ended = _auction(end_time=datetime.now(timezone.utc) - timedelta(minutes=1))
        with pytest.raises(BidRejected, match="not active"):
            validate_bid(ended, 10.0)

    def test_rejects_bid_at_closing_instant(self, db):
        end_time = datetime.now(timezone.utc) + timedelta(hours=1)

        with pytest.raises(BidRejected, match="not active"):
            validate_bid(_auction(end_time=end_time), 10.0, now=end_time)

    def test_rejects_inactive_auction(self, db):
        with pytest.raises(BidRejected, match="not active"):
            validate_bid(_auction(active=False), 10.0)

    def test_naive_end_time_is_treated_as_utc(self, db):
        naive_future = (datetime.now(timezone.utc) + timedelta(hours=2)).replace(tzinfo=None)
        validate_bid(_auction(end_time=naive_future), 3.0)


# =============================================================================
# Stats
# =============================================================================


class TestSummarizeMarketplace:
    def test_empty_marketplace(self):
        stats = summarize_marketplace([], total_collections=0)

        assert stats.total_nfts == 0
        assert stats.total_volume == "0"
        assert stats.avg_price == "0"
        assert stats.floor_price == "0"
        assert stats.market_cap == "0.0M"

    def test_aggregates_sales_prices_and_users(self):
        rows = [
            {"creator": "0xa", "owner": "0xb", "minted": True, "last_sale": "3", "price": "3", "listed": True},
            {"creator": "0xa", "owner": "0xa", "minted": False, "price": "1.5", "listed": True},
            {"creator": "0xc", "owner": "0xc", "minted": True, "last_sale": "oops", "price": "9", "listed": False},
            {"creator": "0xd", "owner": "0xd", "minted": False, "price": "bad", "listed": True},
        ]

        stats = summarize_marketplace(rows, total_collections=2)

        assert stats.total_nfts == 4
        assert stats.total_sales == 2
        assert stats.total_users == 4
        assert stats.total_volume == "3.00"
        assert stats.avg_price == "2.25"
        assert stats.floor_price == "1.50"
        assert stats.market_cap == "30.0M"
        assert stats.total_collections == 2
