from __future__ import annotations

import json
import unittest
from datetime import datetime, timedelta, timezone

from skypost.collaborators import UploadedImageRef
from skypost.errors import AssemblyError
from skypost.facets import ByteSpan, Facet, Link, Mention, Tag
from skypost.record import ImageEmbed, assemble, rfc3339_utc

_FIXED = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


def _clock() -> datetime:
    return _FIXED


class TestAssemble(unittest.TestCase):
    def test_minimal_record_has_only_text_and_created_at(self) -> None:
        record = assemble("Hello, world!", clock=_clock)
        payload = record.to_dict()

        self.assertEqual(payload, {"text": "Hello, world!", "createdAt": "2024-05-01T12:30:45Z"})
        self.assertNotIn("langs", payload)
        self.assertNotIn("facets", payload)
        self.assertNotIn("embed", payload)

    def test_facet_groups_are_links_then_mentions_then_tags(self) -> None:
        text = "#go @a.bc https://go.dev"
        tag = Facet(ByteSpan(1, 3), (Tag("go"),))
        mention = Facet(ByteSpan(4, 9), (Mention("did:example:a"),))
        link = Facet(ByteSpan(10, 24), (Link("https://go.dev"),))

        record = assemble(text, ["en"], [link], [mention], [tag], clock=_clock)
        payload = record.to_dict()

        self.assertEqual(payload["langs"], ["en"])
        self.assertEqual(
            [f["features"][0]["$type"] for f in payload["facets"]],
            [
                "app.bsky.richtext.facet#link",
                "app.bsky.richtext.facet#mention",
                "app.bsky.richtext.facet#tag",
            ],
        )
        self.assertEqual(payload["facets"][1]["features"][0]["did"], "did:example:a")
        self.assertEqual(payload["facets"][0]["index"], {"byteStart": 10, "byteEnd": 24})

    def test_overlapping_facets_across_groups_are_kept(self) -> None:
        text = "https://x.io/#y"
        link = Facet(ByteSpan(0, 15), (Link(text),))
        tag = Facet(ByteSpan(14, 15), (Tag("y"),))

        record = assemble(text, link_facets=[link], tag_facets=[tag], clock=_clock)
        self.assertEqual(len(record.facets), 2)

    def test_image_embed_in_input_order(self) -> None:
        images = [
            ImageEmbed(
                alt="first",
                image=UploadedImageRef(content_ref="bafy1", declared_size=10, mime_type="image/png"),
                width=4,
                height=3,
            ),
            ImageEmbed(
                alt="",
                image=UploadedImageRef(content_ref="bafy2", declared_size=20, mime_type="image/jpeg"),
                width=1,
                height=2,
            ),
        ]
        payload = assemble("pics", images=images, clock=_clock).to_dict()

        embed = payload["embed"]
        self.assertEqual(embed["$type"], "app.bsky.embed.images")
        self.assertEqual([i["alt"] for i in embed["images"]], ["first", ""])
        self.assertEqual(
            embed["images"][0]["image"],
            {"$type": "blob", "ref": {"$link": "bafy1"}, "mimeType": "image/png", "size": 10},
        )
        self.assertEqual(embed["images"][1]["aspectRatio"], {"width": 1, "height": 2})
        json.dumps(payload)

    def test_rejects_span_past_end_of_text(self) -> None:
        facet = Facet(ByteSpan(0, 99), (Tag("x"),))
        with self.assertRaises(AssemblyError):
            assemble("short", tag_facets=[facet], clock=_clock)

    def test_span_bounds_use_utf8_length(self) -> None:
        text = "✨✨"
        ok = Facet(ByteSpan(3, 6), (Tag("x"),))
        self.assertEqual(len(assemble(text, tag_facets=[ok], clock=_clock).facets), 1)

    def test_rejects_facet_without_features(self) -> None:
        facet = Facet(ByteSpan(0, 1), ())
        with self.assertRaises(AssemblyError):
            assemble("a", link_facets=[facet], clock=_clock)

    def test_created_at_comes_from_each_call(self) -> None:
        times = iter([_FIXED, _FIXED + timedelta(seconds=5)])
        first = assemble("a", clock=lambda: next(times))
        second = assemble("a", clock=lambda: next(times))
        self.assertNotEqual(first.created_at, second.created_at)

    def test_default_clock_is_rfc3339_utc(self) -> None:
        record = assemble("now")
        parsed = datetime.strptime(record.created_at, "%Y-%m-%dT%H:%M:%SZ")
        self.assertIsNotNone(parsed)


class TestByteSpan(unittest.TestCase):
    def test_invalid_spans_raise_assembly_error(self) -> None:
        with self.assertRaises(AssemblyError):
            ByteSpan(-1, 2)
        with self.assertRaises(AssemblyError):
            ByteSpan(3, 3)
        with self.assertRaises(AssemblyError):
            ByteSpan(5, 2)

    def test_rfc3339_converts_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        self.assertEqual(
            rfc3339_utc(datetime(2024, 1, 1, 2, 0, 0, tzinfo=plus_two)),
            "2024-01-01T00:00:00Z",
        )


if __name__ == "__main__":
    unittest.main()
