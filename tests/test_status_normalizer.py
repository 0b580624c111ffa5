"""Tests for mapping provider payloads onto canonical deployments."""

from datetime import datetime

import pytest

from apptracker.services.status_normalizer import (
    map_cloudflare_status, map_environment, map_github_status, map_vercel_status, normalize,
)

from conftest import github_item


class TestGitHub:
    def test_success_becomes_deployed(self):
        [record] = normalize('github', [github_item(7)])
        assert record.external_id == '7'
        assert record.status == 'deployed'
        assert record.environment == 'production'
        assert record.branch == 'main'
        assert record.commit_sha == 'a' * 40
        assert record.url == 'https://site.example.com'
        assert record.created_at == datetime(2026, 10, 1, 12, 0, 0)

    @pytest.mark.parametrize('state,expected', [
        ('error', 'failed'),
        ('failure', 'failed'),
        ('in_progress', 'building'),
        ('queued', 'pending'),
        ('inactive', 'rolled_back'),
        ('brand_new_state', 'unknown'),
    ])
    def test_state_table(self, state, expected):
        assert map_github_status(state) == expected

    def test_no_status_yet_is_pending(self):
        item = github_item(1)
        item['latest_status'] = None
        [record] = normalize('github', [item])
        assert record.status == 'pending'
        assert record.url is None


class TestVercel:
    def test_ready_production_deployment(self):
        [record] = normalize('vercel', [{
            'uid': 'dpl_abc',
            'state': 'READY',
            'target': 'production',
            'url': 'site-abc.vercel.app',
            'createdAt': 1790000000000,
            'meta': {'githubCommitRef': 'main', 'githubCommitSha': 'b' * 40},
        }])
        assert record.external_id == 'dpl_abc'
        assert record.status == 'deployed'
        assert record.environment == 'production'
        assert record.url == 'https://site-abc.vercel.app'
        assert record.branch == 'main'
        assert record.created_at is not None

    def test_preview_is_staging(self):
        [record] = normalize('vercel', [{'uid': 'd', 'state': 'BUILDING', 'createdAt': 1}])
        assert record.environment == 'staging'
        assert record.status == 'building'

    def test_ready_state_field_is_accepted(self):
        assert map_vercel_status('canceled') == 'rolled_back'
        [record] = normalize('vercel', [{'uid': 'd', 'readyState': 'ERROR', 'createdAt': 1}])
        assert record.status == 'failed'

    def test_missing_created_at_is_dropped(self):
        assert normalize('vercel', [{'uid': 'd', 'state': 'READY'}]) == []


class TestCloudflare:
    def test_successful_deploy_stage(self):
        [record] = normalize('cloudflare', [{
            'id': 'cf-1',
            'environment': 'production',
            'url': 'https://abc.site.pages.dev',
            'created_on': '2026-10-02T08:30:00.000000Z',
            'latest_stage': {'name': 'deploy', 'status': 'success'},
            'deployment_trigger': {'metadata': {'branch': 'main', 'commit_hash': 'c' * 40}},
        }])
        assert record.status == 'deployed'
        assert record.environment == 'production'
        assert record.branch == 'main'
        assert record.created_at == datetime(2026, 10, 2, 8, 30)

    @pytest.mark.parametrize('stage,expected', [
        ({'name': 'build', 'status': 'success'}, 'building'),
        ({'name': 'build', 'status': 'active'}, 'building'),
        ({'name': 'queued', 'status': 'idle'}, 'pending'),
        ({'name': 'build', 'status': 'failure'}, 'failed'),
        ({'name': 'deploy', 'status': 'canceled'}, 'rolled_back'),
        ({'name': 'deploy', 'status': 'mystery'}, 'unknown'),
        (None, 'unknown'),
    ])
    def test_stage_table(self, stage, expected):
        assert map_cloudflare_status(stage) == expected


def test_order_is_preserved_and_bad_items_skipped():
    items = [github_item(3), {'ref': 'no-id'}, 'garbage', github_item(1), github_item(2)]
    records = normalize('github', items)
    assert [r.external_id for r in records] == ['3', '1', '2']


def test_unknown_provider_rejected():
    with pytest.raises(ValueError):
        normalize('heroku', [])


@pytest.mark.parametrize('name,expected', [
    ('Production', 'production'),
    ('staging', 'staging'),
    ('Preview', 'staging'),
    ('qa', 'development'),
    (None, 'development'),
])
def test_map_environment(name, expected):
    assert map_environment(name) == expected
