"""
Tests for page assembly (page_content_resolver.py)
"""

import asyncio

from page_content_resolver import PageContentResolver, build_render_instructions, resolve_page
from surah_text_cache import SurahTextCache, SurahTextEntry
from conftest import make_ayahs


def _lookup(*surahs):
    entries = {s: SurahTextEntry("test", s, "", make_ayahs(s, count)) for s, count in surahs}
    return entries.get


class TestResolvePage:
    def test_last_page_has_three_whole_surahs(self, page_index):
        lookup = _lookup((112, 4), (113, 5), (114, 6))
        resolution = resolve_page(page_index.descriptor_for_page(604), lookup)
        assert resolution.ready
        assert len(resolution.ayahs) == 15
        assert [(a.surah, a.number) for a in resolution.ayahs] == (
            [(112, a) for a in range(1, 5)] + [(113, a) for a in range(1, 6)]
            + [(114, a) for a in range(1, 7)])
        assert resolution.surahs() == [112, 113, 114]

    def test_first_page(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(1), _lookup((1, 7)))
        assert [(a.surah, a.number) for a in resolution.ayahs] == [(1, a) for a in range(1, 8)]

    def test_single_surah_page_slices_by_position(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(3), _lookup((2, 286)))
        assert [a.number for a in resolution.ayahs] == list(range(6, 17))

    def test_surah_boundary_inside_page(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(293), _lookup((17, 111), (18, 110)))
        assert [(a.surah, a.number) for a in resolution.ayahs] == (
            [(17, a) for a in range(105, 112)] + [(18, a) for a in range(1, 5)])

    def test_middle_surah_is_taken_whole(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(603),
                                  _lookup((109, 6), (110, 3), (111, 5)))
        assert len([a for a in resolution.ayahs if a.surah == 110]) == 3
        assert len(resolution.ayahs) == 14

    def test_partial_multi_surah_page_is_empty(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(604), _lookup((112, 4)))
        assert resolution.ayahs == ()
        assert resolution.pending == {113, 114}
        assert not resolution.ready

    def test_missing_single_surah(self, page_index):
        resolution = resolve_page(page_index.descriptor_for_page(50), _lookup())
        assert resolution.pending == {3}
        assert resolution.ayahs == ()

    def test_no_descriptor(self):
        resolution = resolve_page(None, _lookup())
        assert resolution.ayahs == ()
        assert not resolution.ready


class TestPageContentResolver:
    def test_multi_surah_page_loads_missing_surahs(self, page_index, text_source):
        cache = SurahTextCache(text_source)
        resolver = PageContentResolver(page_index, cache)

        async def scenario():
            await cache.load("hafs", 112)
            first = resolver.resolve(604, "hafs")
            await cache.wait_idle()
            second = resolver.resolve(604, "hafs")
            return first, second

        first, second = asyncio.run(scenario())
        assert first.ayahs == ()
        assert first.pending == {113, 114}
        assert ("hafs", 113) in text_source.calls
        assert ("hafs", 114) in text_source.calls
        assert second.ready
        assert len(second.ayahs) == 15

    def test_single_surah_page_prefetches_neighbors(self, page_index, text_source):
        cache = SurahTextCache(text_source)
        resolver = PageContentResolver(page_index, cache)

        async def scenario():
            pending = resolver.resolve(50, "hafs")
            await cache.wait_idle()
            return pending, resolver.resolve(50, "hafs")

        pending, ready = asyncio.run(scenario())
        assert pending.pending == {3}
        assert sorted(s for _, s in text_source.calls) == [2, 3, 4]
        assert [a.number for a in ready.ayahs] == list(range(1, 10))

    def test_failed_surah_keeps_page_pending(self, page_index):
        from conftest import FakeTextSource
        source = FakeTextSource(fail={113})
        cache = SurahTextCache(source)
        resolver = PageContentResolver(page_index, cache)

        async def scenario():
            resolver.resolve(604, "hafs")
            await cache.wait_idle()
            return resolver.resolve(604, "hafs")

        resolution = asyncio.run(scenario())
        assert resolution.pending == {113}
        assert resolution.ayahs == ()

    def test_unknown_page(self, page_index, text_source):
        resolver = PageContentResolver(page_index, SurahTextCache(text_source))
        resolution = resolver.resolve(700, "hafs")
        assert resolution.page_number == 700
        assert resolution.ayahs == ()
        assert text_source.calls == []


class TestRenderInstructions:
    def test_bismillah_before_each_surah_on_last_page(self):
        ayahs = make_ayahs(112, 4) + make_ayahs(113, 5) + make_ayahs(114, 6)
        instructions = build_render_instructions(ayahs)
        assert [i.index for i in instructions if i.bismillah] == [0, 4, 9]
        assert [i.index for i in instructions if i.surah_header] == [0, 4, 9]

    def test_bismillah_for_surah_starting_mid_page(self):
        ayahs = make_ayahs(17, 111)[104:] + make_ayahs(18, 4)
        instructions = build_render_instructions(ayahs)
        assert [i.index for i in instructions if i.bismillah] == [7]

    def test_at_tawbah_has_header_without_bismillah(self):
        instructions = build_render_instructions(make_ayahs(8, 75)[70:] + make_ayahs(9, 3))
        starts = [i for i in instructions if i.surah_header]
        assert len(starts) == 1
        assert starts[0].ayah.surah == 9
        assert not starts[0].bismillah

    def test_al_fatihah_has_no_separate_bismillah(self):
        instructions = build_render_instructions(make_ayahs(1, 7))
        assert instructions[0].surah_header
        assert not any(i.bismillah for i in instructions)

    def test_no_markers_mid_surah(self):
        instructions = build_render_instructions(make_ayahs(2, 16)[5:])
        assert not any(i.bismillah or i.surah_header for i in instructions)
