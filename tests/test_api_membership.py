"""
Tests for the Membership and Points API endpoints.
"""
import json
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from app.extensions import db
from app.middleware.auth import create_token
from app.models import User


class TestAuth:

    def test_missing_token(self, client, sample_tiers):
        response = client.get('/api/membership/status')

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_garbage_token(self, client):
        response = client.get('/api/membership/status', headers={'Authorization': 'Bearer nope'})

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'INVALID_TOKEN'

    def test_admin_token_is_not_a_user_token(self, client, admin_headers):
        response = client.get('/api/membership/status', headers=admin_headers)
        assert response.status_code == 401

    def test_suspended_user(self, client, member_user, auth_headers):
        member_user.suspended = True
        db.session.commit()

        response = client.get('/api/membership/status', headers=auth_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'ACCOUNT_SUSPENDED'


class TestMembershipEndpoints:

    def test_list_tiers_is_public(self, client, sample_tiers):
        response = client.get('/api/membership/tiers')

        assert response.status_code == 200
        tiers = response.get_json()['tiers']
        assert len(tiers) == 4
        assert tiers[0]['id'] == 'natural'

    def test_status(self, client, member_user, auth_headers):
        response = client.get('/api/membership/status', headers=auth_headers)
        data = response.get_json()

        assert response.status_code == 200
        assert data['is_member'] is True
        assert data['membership']['tier_id'] == 'hybrid'
        assert data['points']['balance'] == 250

    def test_status_for_non_member(self, client, sample_user, user_headers):
        data = client.get('/api/membership/status', headers=user_headers).get_json()

        assert data['is_member'] is False
        assert data['membership'] is None

    def test_benefits(self, client, member_user, auth_headers):
        member_user.refills_used = 1
        db.session.commit()

        data = client.get('/api/membership/benefits', headers=auth_headers).get_json()

        assert data['benefits']['service_discount'] == 10
        assert data['usage']['refills_used'] == 1
        assert data['remaining'] == {'refills': 1, 'full_sets': 0}

    def test_product_quote(self, client, member_user, auth_headers):
        response = client.post('/api/membership/quote/product', headers=auth_headers,
                               json={'price': 40})

        assert response.status_code == 200
        assert response.get_json() == {'price': 34.0, 'discount': 15, 'savings': 6.0}

    def test_product_quote_requires_price(self, client, member_user, auth_headers):
        response = client.post('/api/membership/quote/product', headers=auth_headers, json={})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PRICE'

    def test_product_quote_rejects_negative_price(self, client, member_user, auth_headers):
        response = client.post('/api/membership/quote/product', headers=auth_headers,
                               json={'price': -5})
        assert response.status_code == 400

    def test_service_quote_with_points(self, client, member_user, auth_headers):
        response = client.post('/api/membership/quote/service', headers=auth_headers, json={
            'price': 150,
            'service_id': 'volume-fill',
            'points_to_redeem': 100,
        })
        data = response.get_json()

        assert response.status_code == 200
        assert data['price'] == 135.0
        assert data['final_price'] == 35.0
        assert data['points_to_earn'] == 1

    def test_service_quote_too_many_points(self, client, member_user, auth_headers):
        response = client.post('/api/membership/quote/service', headers=auth_headers, json={
            'price': 50,
            'points_to_redeem': 500,
        })

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_POINTS_TO_REDEEM'


class TestPriorityBooking:

    BOOKING = {'benefit_type': 'refill', 'service_id': 'classic-refill', 'date': '2026-11-02', 'time': '10:00'}

    def test_books_free_refill(self, client, member_user, auth_headers):
        response = client.post('/api/membership/priority-booking', headers=auth_headers, json=self.BOOKING)
        data = response.get_json()

        assert response.status_code == 201
        assert data['claim']['used'] == 1
        assert data['booking']['price'] == 0
        assert 'Free Refill (Hybrid membership)' in data['booking']['notes']

    def test_allowance_exhausted(self, client, member_user, auth_headers):
        member_user.refills_used = 2
        db.session.commit()

        response = client.post('/api/membership/priority-booking', headers=auth_headers, json=self.BOOKING)

        assert response.status_code == 422
        assert response.get_json()['error']['code'] == 'BENEFIT_EXHAUSTED'

    def test_non_member(self, client, sample_user, user_headers):
        response = client.post('/api/membership/priority-booking', headers=user_headers, json=self.BOOKING)
        assert response.status_code == 403

    def test_missing_fields(self, client, member_user, auth_headers):
        response = client.post('/api/membership/priority-booking', headers=auth_headers,
                               json={'benefit_type': 'refill'})
        assert response.status_code == 400


class TestCheckoutAndCancel:

    def test_checkout(self, client, member_user, auth_headers):
        with patch('app.api.membership.StripeService.create_membership_checkout') as mock_checkout:
            mock_checkout.return_value = {'session_id': 'cs_test_1', 'checkout_url': 'https://checkout.stripe.com/x'}

            response = client.post('/api/membership/checkout', headers=auth_headers, json={
                'tier_id': 'volume',
                'success_url': 'https://lashclub.test/membership/success',
                'cancel_url': 'https://lashclub.test/membership',
            })

        assert response.status_code == 200
        assert response.get_json()['session_id'] == 'cs_test_1'
        tier = mock_checkout.call_args[0][1]
        assert tier.id == 'volume'

    def test_checkout_unknown_tier(self, client, member_user, auth_headers):
        response = client.post('/api/membership/checkout', headers=auth_headers, json={
            'tier_id': 'diamond', 'success_url': 'https://a', 'cancel_url': 'https://b',
        })

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'TIER_NOT_FOUND'

    def test_cancel(self, client, member_user, auth_headers):
        with patch('app.services.stripe_service.StripeService.cancel_subscription') as mock_cancel:
            response = client.post('/api/membership/cancel', headers=auth_headers)

        assert response.status_code == 200
        mock_cancel.assert_called_once_with('sub_test123', at_period_end=True)
        assert db.session.get(User, member_user.id).cancel_at_period_end is True

    def test_cancel_without_membership(self, client, sample_user, user_headers):
        response = client.post('/api/membership/cancel', headers=user_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'MEMBERSHIP_INACTIVE'


class TestPointsEndpoints:

    def test_balance(self, client, member_user, auth_headers):
        data = client.get('/api/points/balance', headers=auth_headers).get_json()

        assert data['balance'] == 250
        assert data['value'] == 250.0
        assert data['can_redeem'] is True

    def test_history(self, client, app, member_user, auth_headers):
        from app.services.points_service import PointsService
        service = PointsService()
        for amount in (100, 200, 300):
            service.earn_for_service(member_user.id, amount)

        response = client.get('/api/points/history?per_page=2', headers=auth_headers)
        data = response.get_json()

        assert response.status_code == 200
        assert len(data['history']) == 2
        assert data['history'][0]['amount'] == 15
        assert data['pagination']['total'] == 3
        assert data['pagination']['has_next'] is True

    def test_redeem_preview(self, client, member_user, auth_headers):
        response = client.post('/api/points/redeem-preview', headers=auth_headers,
                               json={'service_amount': 80})

        assert response.get_json()['max_redeemable_points'] == 80

    def test_redeem_preview_below_minimum(self, client, sample_user, user_headers):
        data = client.post('/api/points/redeem-preview', headers=user_headers,
                           json={'service_amount': 80}).get_json()

        assert data['can_redeem'] is False
        assert data['max_redeemable_points'] == 0

    def test_redeem(self, client, member_user, auth_headers):
        response = client.post('/api/points/redeem', headers=auth_headers,
                               json={'points': 100, 'service_amount': 150, 'order_id': 'appt_12'})
        data = response.get_json()

        assert response.status_code == 200
        assert data['points_redeemed'] == 100
        assert data['discount'] == 100.0
        assert data['balance'] == 150
        assert db.session.get(User, member_user.id).points_balance == 150

    def test_redeem_below_minimum(self, client, sample_user, user_headers):
        response = client.post('/api/points/redeem', headers=user_headers,
                               json={'points': 10, 'service_amount': 80})

        assert response.status_code == 422
        assert response.get_json()['error']['code'] == 'INSUFFICIENT_POINTS'

    def test_redeem_requires_points(self, client, member_user, auth_headers):
        response = client.post('/api/points/redeem', headers=auth_headers, json={'service_amount': 80})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_POINTS'


def test_health(client):
    response = client.get('/health')
    assert response.get_json() == {'status': 'healthy', 'service': 'lashclub'}


def test_unknown_route_uses_error_envelope(client):
    response = client.get('/api/membership/nope')

    assert response.status_code == 404
    assert response.get_json() == {'error': {'message': 'Not found', 'code': 'NOT_FOUND'}}


def test_wrong_method_uses_error_envelope(client):
    response = client.delete('/api/membership/tiers')

    assert response.status_code == 405
    assert response.get_json()['error']['code'] == 'INVALID_REQUEST'
