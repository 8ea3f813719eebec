"""Tests for the batch acquisition pipeline."""

import asyncio
from io import BytesIO
from unittest.mock import patch

import httpx
import pytest
import respx
from PIL import Image

from packvault.models.card import Rarity
from packvault.models.failure import FetchFailedError, FetchTimeoutError, TransactionAbortedError
from packvault.services.acquisition import AcquisitionPipeline, fetch_image, plan_acquisition
from packvault.services.image_compression import compress_image
from packvault.services.rarity import RemoteRarityClassifier

IMAGE_HOST = "https://images.example.test"


class TestPlanAcquisition:
    def test_rounds_down_to_pack_multiple(self) -> None:
        """Requests are trimmed to whole packs."""
        assert plan_acquisition(20, 0, cap=32, pack_size=8) == 16

    def test_bounded_by_headroom(self) -> None:
        """Headroom under the ceiling limits the plan."""
        assert plan_acquisition(50, 20, cap=32, pack_size=8) == 8

    def test_no_room_for_a_pack(self) -> None:
        """Less than a pack of headroom plans nothing."""
        assert plan_acquisition(50, 27, cap=32, pack_size=8) == 0

    def test_over_capacity(self) -> None:
        """A mirror already past the ceiling plans nothing."""
        assert plan_acquisition(8, 40, cap=32, pack_size=8) == 0

    def test_negative_request(self) -> None:
        """Negative requests plan nothing."""
        assert plan_acquisition(-8, 0, cap=32, pack_size=8) == 0


class TestFetchImage:
    @respx.mock
    async def test_returns_body(self) -> None:
        """Successful responses return the raw bytes."""
        respx.get(f"{IMAGE_HOST}/a.png").mock(return_value=httpx.Response(200, content=b"img"))

        async with httpx.AsyncClient() as client:
            assert await fetch_image(client, f"{IMAGE_HOST}/a.png", 5.0) == b"img"

    @respx.mock
    async def test_non_success_status(self) -> None:
        """Non-2xx responses raise FetchFailedError."""
        respx.get(f"{IMAGE_HOST}/a.png").mock(return_value=httpx.Response(404))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchFailedError) as exc_info:
                await fetch_image(client, f"{IMAGE_HOST}/a.png", 5.0)

        assert exc_info.value.detail == "HTTP 404"

    @respx.mock
    async def test_empty_body(self) -> None:
        """An empty 200 body is a failure."""
        respx.get(f"{IMAGE_HOST}/a.png").mock(return_value=httpx.Response(200, content=b""))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchFailedError):
                await fetch_image(client, f"{IMAGE_HOST}/a.png", 5.0)

    @respx.mock
    async def test_transport_timeout(self) -> None:
        """httpx timeouts become FetchTimeoutError."""
        respx.get(f"{IMAGE_HOST}/a.png").mock(side_effect=httpx.ReadTimeout("slow"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchTimeoutError) as exc_info:
                await fetch_image(client, f"{IMAGE_HOST}/a.png", 5.0)

        assert exc_info.value.timeout == 5.0

    async def test_overall_timeout(self) -> None:
        """A response slower than the fixed timeout is abandoned."""

        async def slow_get(*args, **kwargs) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"late")

        async with httpx.AsyncClient() as client:
            with patch.object(client, "get", side_effect=slow_get):
                with pytest.raises(FetchTimeoutError):
                    await fetch_image(client, f"{IMAGE_HOST}/a.png", 0.01)

    @respx.mock
    async def test_connection_error(self) -> None:
        """Transport errors become FetchFailedError."""
        respx.get(f"{IMAGE_HOST}/a.png").mock(side_effect=httpx.ConnectError("refused"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchFailedError):
                await fetch_image(client, f"{IMAGE_HOST}/a.png", 5.0)


class TestPipelineRun:
    @respx.mock
    async def test_fills_to_ceiling(
        self, bridge, store, make_record, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """With 20 cached and a 50-card request, exactly one pack is fetched."""
        await bridge.add_cards([make_record() for _ in range(20)])
        route = respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(40)), cap=32, pack_size=8
        )

        result = await pipeline.run(50)

        assert result.planned == 8
        assert route.call_count == 8
        assert result.written == 8
        assert result.success is True
        assert await store.count() == 28
        assert len(bridge.get_cards()) == 28

    @respx.mock
    async def test_records_are_compressed_and_tagged(
        self, bridge, store, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """Stored payloads are recompressed and carry the classifier tag."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(8)), cap=32, pack_size=8
        )

        await pipeline.run(8)

        records = await store.get_all()
        assert len(records) == 8
        for record in records:
            with Image.open(BytesIO(record.compressed_payload)) as img:
                assert img.width <= 600 and img.height <= 450
        assert all(r.rarity is Rarity.COMMON for r in records)
        assert all(r.shown is False for r in records)

    @respx.mock
    async def test_all_candidates_fail(
        self, bridge, store, make_record, make_descriptors, catalog_for
    ) -> None:
        """When every fetch fails nothing is written and the run reports failure."""
        await bridge.add_cards([make_record() for _ in range(4)])
        respx.get(url__startswith=IMAGE_HOST).mock(return_value=httpx.Response(503))
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(16)), cap=32, pack_size=8
        )

        result = await pipeline.run(16)

        assert result.success is False
        assert result.written == 0
        assert result.reason == "all_fetches_failed"
        assert await store.count() == 4
        assert len(bridge.get_cards()) == 4

    @respx.mock
    async def test_failed_candidates_are_dropped(
        self, bridge, store, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """Timeouts, errors and undecodable bodies drop only their own candidate."""
        descriptors = make_descriptors(8)
        respx.get(descriptors[0].remote_image_ref).mock(side_effect=httpx.ReadTimeout("slow"))
        respx.get(descriptors[1].remote_image_ref).mock(return_value=httpx.Response(500))
        respx.get(descriptors[2].remote_image_ref).mock(
            return_value=httpx.Response(200, content=b"not an image")
        )
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(bridge, catalog_for(descriptors), cap=32, pack_size=8)

        result = await pipeline.run(8)

        assert result.success is True
        assert result.attempted == 8
        assert result.produced == 5
        assert result.written == 5
        stored_ids = {r.id for r in await store.get_all()}
        assert stored_ids == {d.id for d in descriptors[3:]}

    async def test_at_capacity_is_noop(self, bridge, make_record, make_descriptors, catalog_for) -> None:
        """A full working set makes no fetches and succeeds with zero acquired."""
        await bridge.add_cards([make_record() for _ in range(30)])
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(8)), cap=32, pack_size=8
        )

        result = await pipeline.run(8)

        assert result.success is True
        assert result.written == 0
        assert result.reason == "at_capacity"

    async def test_no_candidates(self, bridge, make_record, catalog_for) -> None:
        """An exhausted catalog fails without fetching."""
        pipeline = AcquisitionPipeline(bridge, catalog_for([]), cap=32, pack_size=8)

        result = await pipeline.run(8)

        assert result.success is False
        assert result.reason == "no_candidates"

    async def test_excludes_cached_ids(self, bridge, make_record, make_descriptors, catalog_for) -> None:
        """Candidates already in the mirror are not requested again."""
        descriptors = make_descriptors(8, set_id="sv3")
        await bridge.add_cards([make_record(d.card_number) for d in descriptors])
        pipeline = AcquisitionPipeline(bridge, catalog_for(descriptors), cap=32, pack_size=8)

        result = await pipeline.run(8)

        assert result.reason == "no_candidates"

    @respx.mock
    async def test_durable_failure_reports_zero(
        self, bridge, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """An aborted commit writes nothing and reports failure."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(8)), cap=32, pack_size=8
        )

        with patch.object(
            bridge.store, "add_records", side_effect=TransactionAbortedError("add_records")
        ):
            result = await pipeline.run(8)

        assert result.success is False
        assert result.written == 0
        assert result.reason == "transaction_aborted"
        assert bridge.get_cards() == []

    @respx.mock
    async def test_trims_when_mirror_grew_during_fetch(
        self, bridge, make_record, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """Records beyond the ceiling at write time are discarded."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(
            bridge, catalog_for(make_descriptors(16)), cap=16, pack_size=8
        )
        real_waves = pipeline._run_waves

        async def waves_with_concurrent_write(client, candidates):
            produced = await real_waves(client, candidates)
            await bridge.add_cards([make_record() for _ in range(4)])
            return produced

        with patch.object(pipeline, "_run_waves", side_effect=waves_with_concurrent_write):
            result = await pipeline.run(16)

        assert result.produced == 16
        assert result.written == 12
        assert len(bridge.get_cards()) == 16


def _png(width: int, height: int) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), (200, 40, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


class FailingClassifier:
    async def classify(self, descriptor):
        raise RuntimeError("classifier exploded")


class TestCandidateIsolation:
    @respx.mock
    async def test_oversized_image_dropped(
        self, bridge, store, make_descriptors, catalog_for
    ) -> None:
        """An image over Pillow's pixel limit drops only that candidate."""
        descriptors = make_descriptors(8)
        respx.get(descriptors[2].remote_image_ref).mock(
            return_value=httpx.Response(200, content=_png(100, 100))
        )
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=_png(10, 10))
        )
        pipeline = AcquisitionPipeline(bridge, catalog_for(descriptors), cap=32, pack_size=8)

        with patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            result = await pipeline.run(8)

        assert result.success is True
        assert result.produced == 7
        assert result.written == 7
        assert descriptors[2].id not in {r.id for r in await store.get_all()}

    @respx.mock
    async def test_unexpected_error_dropped(
        self, bridge, store, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """An unexpected exception in one candidate does not abort the wave."""
        descriptors = make_descriptors(8)
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(bridge, catalog_for(descriptors), cap=32, pack_size=8)
        real_compress = compress_image
        broken_url = descriptors[0].remote_image_ref

        def compress_or_fail(data, options, source):
            if source == broken_url:
                raise RuntimeError("encoder crashed")
            return real_compress(data, options, source)

        with patch(
            "packvault.services.acquisition.compress_image", side_effect=compress_or_fail
        ):
            result = await pipeline.run(8)

        assert result.produced == 7
        assert await store.count() == 7

    @respx.mock
    async def test_non_object_rarity_payload(
        self, bridge, store, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """A rarity API returning a JSON list falls back to the manifest rarity."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        respx.get(url__startswith="https://cards.example.test/v2/cards/").mock(
            return_value=httpx.Response(200, json=[])
        )
        classifier = RemoteRarityClassifier("https://cards.example.test/v2")
        pipeline = AcquisitionPipeline(
            bridge,
            catalog_for(make_descriptors(8)),
            classifier=classifier,
            cap=32,
            pack_size=8,
        )

        result = await pipeline.run(8)

        assert result.written == 8
        assert {r.rarity for r in await store.get_all()} == {Rarity.COMMON}

    @respx.mock
    async def test_classifier_failure_uses_manifest(
        self, bridge, make_descriptors, catalog_for, png_bytes
    ) -> None:
        """A classifier that raises does not drop the card."""
        respx.get(url__startswith=IMAGE_HOST).mock(
            return_value=httpx.Response(200, content=png_bytes)
        )
        pipeline = AcquisitionPipeline(
            bridge,
            catalog_for(make_descriptors(8)),
            classifier=FailingClassifier(),
            cap=32,
            pack_size=8,
        )

        result = await pipeline.run(8)

        assert result.written == 8
        assert all(card.rarity is Rarity.COMMON for card in bridge.get_cards())


class TestWaves:
    async def test_wave_width_bounds_concurrency(
        self, bridge, make_descriptors, catalog_for, make_record
    ) -> None:
        """No more than wave_width fetches run at once and waves do not overlap."""
        in_flight = 0
        peak = 0
        finished: list[int] = []

        async def fake_acquire(client, descriptor):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            finished.append(in_flight)
            return make_record(descriptor.card_number, set_id=descriptor.set_id)

        async with httpx.AsyncClient() as client:
            pipeline = AcquisitionPipeline(
                bridge,
                catalog_for(make_descriptors(16)),
                client=client,
                cap=32,
                pack_size=8,
                wave_width=3,
            )
            with patch.object(pipeline, "acquire_one", side_effect=fake_acquire):
                result = await pipeline.run(16)

        assert peak == 3
        assert result.written == 16
        # every third completion drains its wave
        assert finished[2] == 0 and finished[5] == 0

    def test_wave_width_must_be_positive(self, bridge, catalog_for) -> None:
        """A zero wave width is rejected."""
        with pytest.raises(ValueError):
            AcquisitionPipeline(bridge, catalog_for([]), wave_width=0)
