"""Unit tests for FrameSettings and interval clamping."""

import json

import pytest

from photoframe.player.settings import DEFAULT_SETTINGS, FrameSettings, clamp_interval


class TestClampInterval:
    """Tests for clamp_interval."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, 10),
        (-5, 10),
        (10, 10),
        (17, 17),
        (35, 35),
        (36, 35),
        ('15', 15),
        (14.4, 14),
    ])
    def test_clamp(self, seconds, expected):
        assert clamp_interval(seconds) == expected

    @pytest.mark.parametrize("seconds", ['abc', None, [], {}])
    def test_rejects_non_numbers(self, seconds):
        with pytest.raises(ValueError):
            clamp_interval(seconds)


class TestFrameSettings:
    """Tests for loading, updating and persisting settings."""

    def test_defaults_when_no_file(self, settings):
        assert settings.to_dict() == DEFAULT_SETTINGS
        assert settings.slide_interval_seconds == 10
        assert settings.background_color == '#000000'

    def test_update_persists(self, tmp_path):
        settings = FrameSettings(str(tmp_path))

        changed = settings.update(background_color='#ffffff', qr_caption_top='Scan me')

        assert changed == {'background_color': '#ffffff', 'qr_caption_top': 'Scan me'}
        with open(tmp_path / FrameSettings.FILENAME) as f:
            saved = json.load(f)
        assert saved['background_color'] == '#ffffff'
        assert FrameSettings(str(tmp_path)).qr_caption_top == 'Scan me'

    def test_update_clamps_interval(self, settings):
        settings.update(slide_interval_seconds=3)
        assert settings.slide_interval_seconds == 10

    def test_update_unknown_key(self, settings):
        with pytest.raises(ValueError):
            settings.update(volume=11)

    def test_unchanged_values_do_not_notify(self, tmp_path):
        calls = []
        settings = FrameSettings(str(tmp_path), on_changed=lambda s, keys: calls.append(keys))

        assert settings.update(background_color='#000000') == {}
        settings.update(background_color='#123456')

        assert calls == [['background_color']]

    def test_callback_error_is_contained(self, tmp_path):
        def explode(settings, keys):
            raise RuntimeError("listener failed")

        settings = FrameSettings(str(tmp_path), on_changed=explode)

        assert settings.update(qr_caption_bottom='Thanks!') == {'qr_caption_bottom': 'Thanks!'}
        assert settings.qr_caption_bottom == 'Thanks!'

    def test_load_clamps_stored_interval(self, tmp_path):
        with open(tmp_path / FrameSettings.FILENAME, 'w') as f:
            json.dump({'slide_interval_seconds': 90, 'server_url': 'http://pi:3000'}, f)

        settings = FrameSettings(str(tmp_path))

        assert settings.slide_interval_seconds == 35
        assert settings.server_url == 'http://pi:3000'

    def test_load_ignores_unknown_keys(self, tmp_path):
        with open(tmp_path / FrameSettings.FILENAME, 'w') as f:
            json.dump({'legacy': True, 'background_image': 'bg.png'}, f)

        settings = FrameSettings(str(tmp_path))

        assert 'legacy' not in settings.to_dict()
        assert settings.background_image == 'bg.png'

    @pytest.mark.parametrize("content", ['{not json', '[1, 2, 3]'])
    def test_corrupt_file_uses_defaults(self, tmp_path, content):
        (tmp_path / FrameSettings.FILENAME).write_text(content)

        settings = FrameSettings(str(tmp_path))

        assert settings.to_dict() == DEFAULT_SETTINGS

    def test_in_memory_settings(self):
        settings = FrameSettings()
        settings.update(slide_interval_seconds=20)
        assert settings.path is None
        assert settings.slide_interval_seconds == 20
