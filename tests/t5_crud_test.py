import unittest
from unittest import mock
from datetime import datetime

from bson import ObjectId

from mongoloquent import Model, QueryBuilder, Collection, relation
from mongoloquent.exc import NotFoundException, ConfigurationException
from mongoloquent.model import resolve_model

from . import models
from .util import install_fake_client


class ModelTest(unittest.TestCase):
    """ Test Model: configuration, fields, persistence """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.db = install_fake_client(models.CONNECTION)[models.DATABASE]

    def test_settings(self):
        # === Test: class attributes override the defaults
        settings = models.User.get_settings()
        self.assertEqual(settings['collection'], 'users')
        self.assertEqual(settings['connection'], models.CONNECTION)
        self.assertEqual(settings['database_name'], models.DATABASE)
        self.assertTrue(settings['use_soft_delete'])
        self.assertTrue(settings['use_timestamps'])
        self.assertEqual(settings['is_deleted'], 'isDeleted')

        # === Test: collection name defaults to the class name + "s"
        self.assertEqual(models.Phone.get_settings()['collection'], 'phones')
        self.assertFalse(models.Phone.get_settings()['use_soft_delete'])
        self.assertFalse(models.Comment.get_settings()['use_timestamps'])

    def test_registry(self):
        # === Test: models by name
        self.assertIs(resolve_model('User'), models.User)
        self.assertIs(resolve_model(models.User), models.User)
        with self.assertRaises(ConfigurationException):
            resolve_model('Nope')

        # === Test: relations are collected
        self.assertEqual(set(models.User._relations),
                         {'phone', 'posts', 'roles', 'teams', 'country', 'image', 'tags'})
        self.assertEqual(set(models.Country._relations), {'users', 'posts'})
        self.assertEqual(Model._relations, {})

        # === Test: inheritance: relations are inherited; overridden without @relation, they're gone
        class Admin(models.User):
            def posts(self):
                return None

            @relation
            def managed(self):
                return self.has_many(models.User, 'managerId')

        self.assertIn('managed', Admin._relations)
        self.assertIn('roles', Admin._relations)
        self.assertNotIn('posts', Admin._relations)
        self.assertNotIn('managed', models.User._relations)

    def test_query_shortcuts(self):
        q = models.User.where('age', 18)
        self.assertIsInstance(q, QueryBuilder)
        self.assertIs(q.model, models.User)
        self.assertEqual(q.to_pipeline(), [{'$match': {'$and': [{'isDeleted': False}, {'age': {'$eq': 18}}]}}])

        self.assertEqual(models.User.query().collection_name, 'users')
        self.assertEqual(models.Phone.with_trashed().to_pipeline(), [])

    def test_fields(self):
        user = models.User({'name': 'John'}, age=18)
        self.assertFalse(user.exists)
        self.assertIsNone(user.get_key())

        # === Test: access
        self.assertEqual(user.name, 'John')
        self.assertEqual(user['age'], 18)
        self.assertIn('name', user)
        self.assertNotIn('email', user)
        self.assertIsNone(user.get_attribute('email'))
        self.assertEqual(user.get_attribute('email', 'n/a'), 'n/a')
        with self.assertRaises(AttributeError):
            user.email
        with self.assertRaises(AttributeError):
            user._private

        # === Test: set(), item assignment, fill()
        user['email'] = 'john@example.com'
        user.set('age', 19).fill({'sex': 'm'})
        self.assertEqual(user.to_dict(), {'name': 'John', 'age': 19, 'email': 'john@example.com', 'sex': 'm'})

        # === Test: change tracking
        user = models.User.hydrate({'_id': ObjectId(), 'name': 'John', 'age': 18})
        self.assertTrue(user.exists)
        self.assertTrue(user.is_clean())

        user.set('age', 19)
        self.assertTrue(user.is_dirty())
        self.assertTrue(user.is_dirty('age'))
        self.assertFalse(user.is_dirty('name'))
        self.assertTrue(user.is_clean('name'))
        self.assertEqual(user.get_changes(), {'age': 19})
        self.assertEqual(user.get_original('age'), {'age': 18})

        # setting the original value back: clean again
        user.set('age', 18)
        self.assertTrue(user.is_clean())

    def test_save(self):
        users = self.db['users']

        # === Test: insert
        user = models.User({'name': 'John', 'age': 18})
        self.assertIs(user.save(), user)
        self.assertTrue(user.exists)
        self.assertIsInstance(user.get_key(), ObjectId)
        self.assertIsInstance(user.createdAt, datetime)
        self.assertIs(user.isDeleted, False)
        self.assertTrue(user.is_clean())
        self.assertEqual(len(users.documents), 1)

        # === Test: update: only the changes are sent
        user.set('age', 19)
        user.save()
        (filter, update), = users.calls_to('find_one_and_update')
        self.assertEqual(filter, {'$and': [{'_id': {'$eq': user.get_key()}}]})
        self.assertEqual(set(update['$set']), {'age', 'updatedAt'})
        self.assertEqual(users.documents[0]['age'], 19)
        self.assertTrue(user.was_changed('age'))
        self.assertFalse(user.was_changed('name'))
        self.assertTrue(user.is_clean())

        # === Test: save() without changes: no query
        user.save()
        self.assertEqual(len(users.calls_to('find_one_and_update')), 1)
        self.assertFalse(user.was_changed())

        # === Test: update()
        user.update({'name': 'Jack'}, sex='m')
        self.assertEqual(users.documents[0]['name'], 'Jack')
        self.assertEqual(users.documents[0]['sex'], 'm')

        # === Test: the document is gone
        users.documents.clear()
        user.set('age', 20)
        with self.assertRaises(NotFoundException):
            user.save()

    def test_default_attributes(self):
        role = models.Role.create({'name': 'admin'})
        self.assertEqual(role.level, 1)
        self.assertEqual(models.Role.create({'name': 'root', 'level': 9}).level, 9)

        # first_or_new(): an unsaved model instance
        role = models.Role.first_or_new({'name': 'guest'})
        self.assertIsInstance(role, models.Role)
        self.assertFalse(role.exists)
        role.save()
        self.assertEqual(len(self.db['roles'].documents), 3)

    def test_reads(self):
        models.User.insert_many([{'name': 'a', 'age': 1}, {'name': 'b', 'age': 2}, {'name': 'c', 'age': 3}])

        users = models.User.where('age', '>', 1).get()
        self.assertIsInstance(users, Collection)
        self.assertEqual([user.name for user in users], ['b', 'c'])
        self.assertTrue(all(isinstance(user, models.User) and user.exists for user in users))

        self.assertEqual(users.pluck('name'), ['b', 'c'])
        self.assertEqual(models.User.count(), 3)
        self.assertEqual(models.User.pluck('name'), ['a', 'b', 'c'])

        user = models.User.find(users[0].get_key())
        self.assertEqual(user.name, 'b')

        self.assertIsNone(models.User.find(ObjectId()))
        with self.assertRaises(NotFoundException):
            models.User.find_or_fail(ObjectId())

    def test_grouped_reads(self):
        q = models.User.group_by('age')
        groups = [{'_id': {'age': 1}, 'count': 2}]
        with mock.patch.object(q, '_aggregate', return_value=groups):
            result = q.get()

        # Groups are plain dicts
        self.assertEqual(result, groups)
        self.assertFalse(any(isinstance(group, models.User) for group in result))

        # === Test: paginate() too
        q = models.User.group_by('age')
        with mock.patch.object(q, '_aggregate', side_effect=[groups, [{'total': 1}]]):
            page = q.paginate(1, 10)
        self.assertEqual(page['data'], groups)
        self.assertFalse(any(isinstance(group, models.User) for group in page['data']))
        self.assertEqual(page['meta']['total'], 1)

    def test_delete_restore(self):
        users = self.db['users']

        # === Test: soft delete: flagged, invisible
        user = models.User.create({'name': 'John'})
        self.assertEqual(user.delete(), 1)
        self.assertTrue(user.exists)
        self.assertIs(user.isDeleted, True)
        self.assertIsInstance(user.deletedAt, datetime)
        self.assertEqual(len(users.documents), 1)

        self.assertEqual(models.User.count(), 0)
        self.assertEqual(models.User.with_trashed().count(), 1)
        self.assertEqual(models.User.only_trashed().count(), 1)

        # === Test: restore()
        user.restore()
        self.assertIs(user.isDeleted, False)
        self.assertIsNone(user.deletedAt)
        self.assertEqual(models.User.count(), 1)

        # === Test: force_delete(): gone for real
        self.assertEqual(user.force_delete(), 1)
        self.assertFalse(user.exists)
        self.assertEqual(users.documents, [])

        # === Test: hard delete
        phone = models.Phone.create({'number': '555'})
        self.assertEqual(phone.delete(), 1)
        self.assertFalse(phone.exists)
        self.assertEqual(self.db['phones'].documents, [])

        # never saved
        with self.assertRaises(NotFoundException):
            models.Phone({'number': '556'}).delete()

    def test_destroy(self):
        ids = models.User.insert_many([{'name': 'a'}, {'name': 'b'}, {'name': 'c'}])

        # soft: flagged
        self.assertEqual(models.User.destroy(ids[0], str(ids[1])), 2)
        self.assertEqual(models.User.pluck('name'), ['c'])

        # force: trashed only
        self.assertEqual(models.User.force_destroy(ids), 2)
        self.assertEqual([doc['name'] for doc in self.db['users'].documents], ['c'])

    def test_refresh(self):
        user = models.User.create({'name': 'John'})
        self.db['users'].documents[0]['name'] = 'Jack'

        user.set('age', 18)
        user.refresh()
        self.assertEqual(user.name, 'Jack')
        self.assertNotIn('age', user)
        self.assertTrue(user.is_clean())

        self.db['users'].documents.clear()
        with self.assertRaises(NotFoundException):
            user.refresh()
