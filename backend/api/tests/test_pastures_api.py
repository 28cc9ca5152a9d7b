from datetime import timedelta
from unittest import mock

from django.contrib.auth.models import User
from django.db import OperationalError
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from pastures import services
from pastures.exceptions import LedgerConflict, PersistenceError
from pastures.models import Pasture, GrazingRotation, PastureRestPeriod, PropertyMap, Gate

API = '/api/v1'

RECTANGLE = [
    [-97.8960, 32.4200],
    [-97.8940, 32.4200],
    [-97.8940, 32.4215],
    [-97.8960, 32.4215],
]


def map_positions(coordinates):
    return [[lat, lng] for lng, lat in coordinates]


class StaffAPITestCase(APITestCase):

    def setUp(self):
        self.staff = User.objects.create_user('manager', password='pasture-pass-123', is_staff=True)
        self.client.force_authenticate(user=self.staff)
        self.today = timezone.localdate()


class PermissionTests(APITestCase):

    def test_reads_are_public(self):
        services.create_pasture(name='North Field')
        response = self.client.get(f'{API}/pastures/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_anonymous_writes_are_refused(self):
        response = self.client.post(f'{API}/pastures/', {'name': 'North Field'}, format='json')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])
        self.assertFalse(Pasture.objects.exists())

    def test_non_staff_writes_are_refused(self):
        user = User.objects.create_user('visitor', password='pasture-pass-123')
        self.client.force_authenticate(user=user)
        response = self.client.post(f'{API}/pastures/', {'name': 'North Field'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_jwt_login_allows_staff_writes(self):
        User.objects.create_user('manager', password='pasture-pass-123', is_staff=True)
        auth_response = self.client.post(f'{API}/auth/token/', {
            'username': 'manager',
            'password': 'pasture-pass-123'
        }, format='json')
        self.assertEqual(auth_response.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {auth_response.data['access']}")
        response = self.client.post(f'{API}/pastures/', {'name': 'North Field'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)


class PastureCrudTests(StaffAPITestCase):

    def test_create_requires_name(self):
        response = self.client.post(f'{API}/pastures/', {'description': 'No name'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)

    def test_geometry_round_trip(self):
        shape = {'type': 'polygon', 'coordinates': RECTANGLE}
        response = self.client.post(f'{API}/pastures/', {'name': 'North Field', 'shape_data': shape}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        fetched = self.client.get(f"{API}/pastures/{response.data['id']}/")
        self.assertEqual(fetched.data['shape_data'], shape)
        self.assertGreater(fetched.data['computed_area_acres'], 0)

    def test_invalid_shape_is_rejected(self):
        response = self.client.post(f'{API}/pastures/', {
            'name': 'North Field',
            'shape_data': {'type': 'hexagon'}
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('shape_data', response.data)

    def test_partial_update(self):
        pasture = services.create_pasture(name='North Field', forage_type='Clover')
        response = self.client.patch(f'{API}/pastures/{pasture.pk}/', {'quality_rating': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quality_rating'], 2)
        self.assertEqual(response.data['forage_type'], 'Clover')

    def test_delete_cascades(self):
        pasture = services.create_pasture(name='North Field')
        services.start_rotation(pasture, self.today, 'Goats')
        response = self.client.delete(f'{API}/pastures/{pasture.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(GrazingRotation.objects.exists())

    def test_filter_and_search(self):
        services.create_pasture(name='North Field', shape_data={'type': 'polygon', 'coordinates': RECTANGLE})
        services.create_pasture(name='South Field')
        drawn = self.client.get(f'{API}/pastures/', {'has_geometry': 'true'})
        self.assertEqual([p['name'] for p in drawn.data], ['North Field'])
        found = self.client.get(f'{API}/pastures/', {'search': 'south'})
        self.assertEqual([p['name'] for p in found.data], ['South Field'])

    def test_set_status_keeps_other_custom_fields(self):
        pasture = services.create_pasture(name='North Field', custom_fields={'water_trough': 'east'})
        response = self.client.post(f'{API}/pastures/{pasture.pk}/set_status/', {
            'statuses': ['Off Limits'],
            'grazing_animals': ['Goats']
        }, format='json')
        self.assertTrue(response.data['success'])
        custom_fields = response.data['pasture']['custom_fields']
        self.assertEqual(custom_fields['statuses'], ['Off Limits'])
        self.assertEqual(custom_fields['grazingAnimals'], ['Goats'])
        self.assertEqual(custom_fields['water_trough'], 'east')

    def test_form_options(self):
        response = self.client.get(f'{API}/pastures/options/')
        self.assertIn('Off Limits', response.data['statuses'])
        self.assertIn('Needs Repair', response.data['fencing_conditions'])
        self.assertEqual(response.data['area_units'], ['acres', 'sq_ft', 'sq_meters'])


class NorthFieldScenarioTests(StaffAPITestCase):

    def status_of(self, pasture_id):
        return self.client.get(f'{API}/pastures/{pasture_id}/details/').data['status']

    def test_draw_graze_and_release(self):
        created = self.client.post(f'{API}/pastures/', {'name': 'North Field'}, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        pasture_id = created.data['id']

        area = self.client.get(f'{API}/pastures/{pasture_id}/area/')
        self.assertIsNone(area.data['computed_area_acres'])

        drawn = self.client.post(f'{API}/map/draw/', {
            'positions': map_positions(RECTANGLE),
            'target': 'pasture-redraw',
            'pasture_id': pasture_id
        }, format='json')
        self.assertEqual(drawn.status_code, status.HTTP_200_OK)
        self.assertEqual(drawn.data['pasture']['shape_data']['coordinates'], RECTANGLE)

        area = self.client.get(f'{API}/pastures/{pasture_id}/area/')
        self.assertGreater(area.data['computed_area_acres'], 0)

        started = self.client.post(f'{API}/pastures/{pasture_id}/start_rotation/', {
            'start_date': str(self.today),
            'animal_type': 'Goats'
        }, format='json')
        self.assertEqual(started.status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.status_of(pasture_id), 'Currently Grazing')

        ended = self.client.post(f"{API}/rotations/{started.data['rotation']['id']}/end/", {
            'end_date': str(self.today),
            'pasture_quality_end': 3
        }, format='json')
        self.assertTrue(ended.data['success'])
        self.assertFalse(ended.data['rotation']['is_current'])
        self.assertEqual(self.status_of(pasture_id), 'Available')


class LedgerApiTests(StaffAPITestCase):

    def setUp(self):
        super().setUp()
        self.pasture = services.create_pasture(name='North Field', quality_rating=2)

    def test_repeated_starts_leave_one_current(self):
        for animals in ['Goats', 'Cows']:
            self.client.post(f'{API}/pastures/{self.pasture.pk}/start_rotation/', {
                'start_date': str(self.today),
                'animal_type': animals
            }, format='json')
        current = self.client.get(f'{API}/rotations/current/')
        self.assertEqual(len(current.data), 1)
        self.assertEqual(current.data[0]['animal_type'], 'Cows')

    def test_create_rotation_through_collection(self):
        services.start_rotation(self.pasture, self.today - timedelta(days=3), 'Goats')
        response = self.client.post(f'{API}/rotations/', {
            'pasture': self.pasture.pk,
            'start_date': str(self.today),
            'animal_type': 'Cows',
            'animal_ids': [1, 2, 3]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_current'])
        self.assertEqual(GrazingRotation.objects.filter(is_current=True).count(), 1)

    def test_end_before_start_is_rejected(self):
        rotation = services.start_rotation(self.pasture, self.today, 'Goats')
        response = self.client.post(f'{API}/rotations/{rotation.pk}/end/', {
            'end_date': str(self.today - timedelta(days=1))
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_conflict_is_reported(self):
        with mock.patch('pastures.services.start_rotation', side_effect=LedgerConflict('already grazing')):
            response = self.client.post(f'{API}/pastures/{self.pasture.pk}/start_rotation/', {
                'start_date': str(self.today),
                'animal_type': 'Goats'
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'success': False, 'error': 'already grazing'})

    def test_persistence_failure_is_reported(self):
        with mock.patch('pastures.services.start_rest_period', side_effect=PersistenceError('database unreachable')):
            response = self.client.post(f'{API}/pastures/{self.pasture.pk}/start_rest/', {
                'start_date': str(self.today)
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.data['success'])

    def test_rest_period_lifecycle(self):
        started = self.client.post(f'{API}/pastures/{self.pasture.pk}/start_rest/', {
            'start_date': str(self.today - timedelta(days=10)),
            'reason': 'Recovery after goats',
            'recovery_actions': ['Mowed', 'Reseeded']
        }, format='json')
        self.assertEqual(started.status_code, status.HTTP_201_CREATED)

        details = self.client.get(f'{API}/pastures/{self.pasture.pk}/details/')
        self.assertEqual(details.data['status'], 'Resting')
        self.assertEqual(details.data['days_resting'], 10)
        self.assertTrue(details.data['needs_attention'])

        active = self.client.get(f'{API}/rest-periods/active/')
        self.assertEqual(len(active.data), 1)

        ended = self.client.post(f"{API}/rest-periods/{started.data['rest_period']['id']}/end/", {
            'actual_end_date': str(self.today)
        }, format='json')
        self.assertTrue(ended.data['success'])
        self.assertFalse(PastureRestPeriod.objects.filter(is_active=True).exists())

    def test_observations(self):
        for offset, rating in [(5, 4), (1, 2)]:
            response = self.client.post(f'{API}/observations/', {
                'pasture': self.pasture.pk,
                'observation_date': str(self.today - timedelta(days=offset)),
                'quality_rating': rating,
                'moisture_level': 'Dry'
            }, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        listed = self.client.get(f'{API}/observations/', {'pasture': self.pasture.pk})
        self.assertEqual(len(listed.data), 2)
        details = self.client.get(f'{API}/pastures/{self.pasture.pk}/details/')
        self.assertEqual(details.data['last_observation']['quality_rating'], 2)

    def test_dashboard(self):
        services.start_rotation(self.pasture, self.today, 'Goats')
        services.create_pasture(name='South Field', quality_rating=5)
        response = self.client.get(f'{API}/pastures/dashboard/')
        self.assertEqual(response.data['total_pastures'], 2)
        self.assertEqual(response.data['current_rotations'], 1)
        self.assertEqual(response.data['needs_attention'], 1)
        self.assertEqual(response.data['pastures'][0]['status'], 'Currently Grazing')

    def test_off_limits_overrides_grazing(self):
        services.start_rotation(self.pasture, self.today, 'Goats')
        services.set_pasture_status(self.pasture, statuses=['Off Limits'])
        details = self.client.get(f'{API}/pastures/{self.pasture.pk}/details/')
        self.assertEqual(details.data['status'], 'Off Limits')

    def test_patch_end_date_closes_rotation(self):
        rotation = services.start_rotation(self.pasture, self.today - timedelta(days=2), 'Goats')
        response = self.client.patch(f'{API}/rotations/{rotation.pk}/', {'end_date': str(self.today)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_current'])
        details = self.client.get(f'{API}/pastures/{self.pasture.pk}/details/')
        self.assertEqual(details.data['status'], 'Available')

    def test_observations_are_append_only(self):
        observation = services.add_observation(self.pasture, self.today, quality_rating=3)
        url = f'{API}/observations/{observation.pk}/'
        self.assertEqual(self.client.patch(url, {'quality_rating': 1}, format='json').status_code,
                         status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(self.client.put(url, {'quality_rating': 1}, format='json').status_code,
                         status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        observation.refresh_from_db()
        self.assertEqual(observation.quality_rating, 3)

    def test_ledger_rows_cannot_be_deleted(self):
        rotation = services.start_rotation(self.pasture, self.today, 'Goats')
        rest_period = services.start_rest_period(self.pasture, self.today)
        response = self.client.delete(f'{API}/rotations/{rotation.pk}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        response = self.client.delete(f'{API}/rest-periods/{rest_period.pk}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertTrue(GrazingRotation.objects.filter(pk=rotation.pk).exists())
        self.assertTrue(PastureRestPeriod.objects.filter(pk=rest_period.pk).exists())


class DatabaseFailureApiTests(StaffAPITestCase):

    def setUp(self):
        super().setUp()
        self.pasture = services.create_pasture(name='North Field')

    def unreachable(self):
        return mock.patch(
            'django.db.models.sql.compiler.SQLCompiler.execute_sql',
            side_effect=OperationalError('database unreachable'),
        )

    def test_list_reports_unavailable_store(self):
        with self.unreachable():
            response = self.client.get(f'{API}/pastures/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.data['success'])
        self.assertIn('database unreachable', response.data['error'])

    def test_detail_action_reports_unavailable_store(self):
        with self.unreachable():
            response = self.client.get(f'{API}/pastures/{self.pasture.pk}/area/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_property_map_save_reports_unavailable_store(self):
        with self.unreachable():
            response = self.client.put(f'{API}/property-map/', {'name': 'The Bold Farm'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.data['success'])


class PropertyMapApiTests(StaffAPITestCase):

    @override_settings(FARM_CENTER=[-97.89525682461269, 32.42041750212495], FARM_MAP_ZOOM=15)
    def test_get_initialises_farm_location(self):
        response = self.client.get(f'{API}/property-map/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['map_center'], [-97.89525682461269, 32.42041750212495])
        self.assertEqual(PropertyMap.objects.count(), 1)

    def test_post_then_put_upserts(self):
        created = self.client.post(f'{API}/property-map/', {'name': 'The Bold Farm', 'total_area': '120.00'}, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        updated = self.client.put(f'{API}/property-map/', {
            'boundary_data': {'type': 'polygon', 'coordinates': RECTANGLE}
        }, format='json')
        self.assertEqual(updated.status_code, status.HTTP_200_OK)
        self.assertEqual(PropertyMap.objects.count(), 1)
        self.assertEqual(updated.data['total_area'], '120.00')
        self.assertGreater(updated.data['boundary_area_acres'], 0)

    def test_bad_map_center(self):
        response = self.client.put(f'{API}/property-map/', {'map_center': [1, 2, 3]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class GateApiTests(StaffAPITestCase):

    def test_create_and_toggle(self):
        created = self.client.post(f'{API}/gates/', {
            'name': 'North Gate',
            'type': 'temporary',
            'lng': '-97.895257',
            'lat': '32.420418'
        }, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        self.assertFalse(created.data['is_open'])

        toggled = self.client.post(f"{API}/gates/{created.data['id']}/toggle/")
        self.assertTrue(toggled.data['success'])
        self.assertTrue(Gate.objects.get().is_open)


class MapApiTests(StaffAPITestCase):

    def setUp(self):
        super().setUp()
        self.north = services.create_pasture(name='North Field', shape_data={'type': 'polygon', 'coordinates': RECTANGLE})
        self.south = services.create_pasture(name='South Field')

    def test_layers(self):
        response = self.client.get(f'{API}/map/layers/')
        self.assertEqual(response.data['default'], 'esri-imagery')
        self.assertEqual(len(response.data['layers']), 6)

    def test_overlays_in_view_and_edit_mode(self):
        view = self.client.get(f'{API}/map/overlays/')
        self.assertEqual(view.data['mode'], 'view')
        self.assertIsNone(view.data['controls'])
        self.assertEqual([o['id'] for o in view.data['overlays']], [f'pasture-{self.north.pk}'])
        self.assertEqual(view.data['overlays'][0]['positions'][0], [32.4200, -97.8960])

        edit = self.client.get(f'{API}/map/overlays/', {'mode': 'edit'})
        self.assertIsNotNone(edit.data['controls'])

    def test_draw_new_pasture(self):
        response = self.client.post(f'{API}/map/draw/', {
            'positions': map_positions(RECTANGLE),
            'target': 'pasture',
            'name': 'East Field'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Pasture.objects.get(name='East Field').shape_data['coordinates'], RECTANGLE)

    def test_draw_without_target_is_ignored(self):
        response = self.client.post(f'{API}/map/draw/', {'positions': map_positions(RECTANGLE)}, format='json')
        self.assertTrue(response.data['ignored'])
        self.assertEqual(Pasture.objects.count(), 2)

    def test_locked_boundary_is_not_replaced(self):
        services.save_property_boundary(RECTANGLE)
        response = self.client.post(f'{API}/map/draw/', {
            'positions': map_positions(RECTANGLE[:3]),
            'target': 'property'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

        response = self.client.post(f'{API}/map/draw/', {
            'positions': map_positions(RECTANGLE[:3]),
            'target': 'property',
            'boundary_locked': False
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(services.get_property_map().boundary_data['coordinates']), 3)

    def test_edit_matches_layer_id(self):
        moved = [[lng + 0.001, lat] for lng, lat in RECTANGLE]
        response = self.client.post(f'{API}/map/edit/', {
            'edits': {f'pasture-{self.north.pk}': map_positions(moved)}
        }, format='json')
        self.assertTrue(response.data['success'])
        self.north.refresh_from_db()
        self.assertEqual(self.north.shape_data['coordinates'], moved)

    def test_edit_unknown_layer(self):
        response = self.client.post(f'{API}/map/edit/', {
            'edits': {f'pasture-{self.south.pk}': map_positions(RECTANGLE)}
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_edit_with_one_bad_ring_saves_nothing(self):
        east = services.create_drawn_pasture('East Field', [[lng + 0.003, lat] for lng, lat in RECTANGLE])
        moved = [[lng + 0.001, lat] for lng, lat in RECTANGLE]
        out_of_range = [[lng + 300, lat] for lng, lat in RECTANGLE]
        response = self.client.post(f'{API}/map/edit/', {
            'edits': {
                f'pasture-{self.north.pk}': map_positions(moved),
                f'pasture-{east.pk}': map_positions(out_of_range),
            }
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.north.refresh_from_db()
        self.assertEqual(self.north.shape_data['coordinates'], RECTANGLE)

    def test_delete_clears_outline_only(self):
        response = self.client.post(f'{API}/map/delete/', {
            'layer_ids': [f'pasture-{self.north.pk}']
        }, format='json')
        self.assertTrue(response.data['success'])
        self.north.refresh_from_db()
        self.assertIsNone(self.north.shape_data)

    def test_view_only_users_cannot_draw(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(f'{API}/map/draw/', {
            'positions': map_positions(RECTANGLE),
            'target': 'pasture',
            'name': 'East Field'
        }, format='json')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])
