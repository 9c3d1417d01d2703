"""Project routes: permission checks, assignment scoping and cascades."""
import pytest

from models import db, Farmer, Project

PROJECT_CODES = ['VIEW_PROJECTS', 'CREATE_PROJECTS', 'EDIT_PROJECTS', 'DELETE_PROJECTS']


@pytest.fixture
def coordinator(make_role, make_user):
    return make_user(make_role('Coordinator', PROJECT_CODES), email='coord@example.com')


class TestProjectRoutes:

    def test_list_is_scoped(self, client, coordinator, make_project, auth_headers):
        make_project('Mine', users=[coordinator])
        make_project('Theirs')

        response = client.get('/api/projects', headers=auth_headers(coordinator))

        assert response.status_code == 200
        projects = response.get_json()
        assert [p['name'] for p in projects] == ['Mine']
        assert projects[0]['assigned_users'][0]['email'] == 'coord@example.com'

    def test_admin_lists_all(self, client, admin, make_project, auth_headers):
        make_project('One')
        make_project('Two')

        response = client.get('/api/projects', headers=auth_headers(admin))
        assert [p['name'] for p in response.get_json()] == ['One', 'Two']

    def test_unassigned_project_read_is_403(self, client, coordinator, make_project, auth_headers):
        project = make_project('Theirs')
        response = client.get(f'/api/projects/{project.id}', headers=auth_headers(coordinator))
        assert response.status_code == 403

    def test_admin_missing_project_is_404(self, client, admin, auth_headers):
        assert client.get('/api/projects/999', headers=auth_headers(admin)).status_code == 404

    def test_create_with_assignments(self, client, admin, coordinator, auth_headers):
        response = client.post('/api/projects', headers=auth_headers(admin), json={
            'name': 'Delta Rice', 'description': 'Rice outreach', 'assigned_user_ids': [coordinator.id]
        })

        assert response.status_code == 201
        project = response.get_json()['project']
        assert project['status'] is True
        assert [u['id'] for u in project['assigned_users']] == [coordinator.id]

    def test_create_requires_name_and_description(self, client, admin, auth_headers):
        response = client.post('/api/projects', headers=auth_headers(admin), json={'name': 'Only Name'})
        assert response.status_code == 400

    def test_create_duplicate_name(self, client, admin, make_project, auth_headers):
        make_project('Delta Rice')
        response = client.post('/api/projects', headers=auth_headers(admin), json={
            'name': 'Delta Rice', 'description': 'Again'
        })
        assert response.status_code == 400

    def test_create_with_unknown_user(self, client, admin, auth_headers):
        response = client.post('/api/projects', headers=auth_headers(admin), json={
            'name': 'Delta Rice', 'description': 'Rice outreach', 'assigned_user_ids': [999]
        })

        assert response.status_code == 400
        assert Project.query.count() == 0

    def test_update_keeps_assignments_when_not_supplied(self, client, admin, coordinator, make_project, auth_headers):
        project = make_project('Delta Rice', users=[coordinator])
        response = client.put(f'/api/projects/{project.id}', headers=auth_headers(admin), json={'status': False})

        assert response.status_code == 200
        data = response.get_json()['project']
        assert data['status'] is False
        assert [u['id'] for u in data['assigned_users']] == [coordinator.id]

    def test_update_replaces_assignments(self, client, admin, coordinator, make_project, auth_headers):
        project = make_project('Delta Rice', users=[coordinator])
        response = client.put(f'/api/projects/{project.id}', headers=auth_headers(admin),
                              json={'assigned_user_ids': []})

        assert response.status_code == 200
        assert response.get_json()['project']['assigned_users'] == []

    def test_scoped_update_of_unassigned_project_is_403(self, client, coordinator, make_project, auth_headers):
        project = make_project('Theirs')
        response = client.put(f'/api/projects/{project.id}', headers=auth_headers(coordinator),
                              json={'description': 'Hijacked'})
        assert response.status_code == 403

    def test_delete_removes_farmers(self, client, admin, make_project, make_farmer, auth_headers):
        project = make_project('Delta Rice')
        make_farmer(project)
        project_id = project.id

        response = client.delete(f'/api/projects/{project_id}', headers=auth_headers(admin))

        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Project, project_id) is None
        assert Farmer.query.filter_by(project_id=project_id).count() == 0

    def test_scoped_delete_of_unassigned_project_is_403(self, client, coordinator, make_project, auth_headers):
        project = make_project('Theirs')
        response = client.delete(f'/api/projects/{project.id}', headers=auth_headers(coordinator))
        assert response.status_code == 403
