import unittest

from bson import ObjectId

from mongoloquent import RelationOptions
from mongoloquent.exc import RelationNotFoundException, InvalidArgumentException

from . import models
from .util import install_fake_client


#: Sub-pipeline condition that hides soft-deleted related documents
NOT_DELETED = {'$match': {'$expr': {'$and': [{'$eq': ['$isDeleted', False]}]}}}


def type_match(type_name: str, field: str) -> dict:
    return {'$match': {'$expr': {'$and': [{'$eq': ['$' + field, type_name]}]}}}


def unwind(alias: str) -> dict:
    return {'$unwind': {'path': '$' + alias, 'preserveNullAndEmptyArrays': True}}


class RelationLookupsTest(unittest.TestCase):
    """ Test the stages that relations generate for with_() """

    longMessage = True
    maxDiff = None

    def test_has_one(self):
        self.assertEqual(models.User.relation_lookups('phone'), [
            {'$lookup': {'from': 'phones', 'localField': '_id', 'foreignField': 'userId', 'as': 'phone'}},
            unwind('phone'),
        ])

    def test_belongs_to(self):
        # Related model has soft delete and hidden fields
        self.assertEqual(models.Post.relation_lookups('user'), [
            {'$lookup': {'from': 'users', 'localField': 'userId', 'foreignField': '_id', 'as': 'user',
                         'pipeline': [NOT_DELETED]}},
            unwind('user'),
            {'$project': {'user.password': 0}},
        ])

        # Custom foreign key
        self.assertEqual(models.Comment.relation_lookups('author')[0], {
            '$lookup': {'from': 'users', 'localField': 'authorId', 'foreignField': '_id', 'as': 'author',
                        'pipeline': [NOT_DELETED]}
        })

    def test_has_many(self):
        self.assertEqual(models.User.relation_lookups('posts'), [
            {'$lookup': {'from': 'posts', 'localField': '_id', 'foreignField': 'userId', 'as': 'posts',
                         'pipeline': [NOT_DELETED]}},
        ])

        self.assertEqual(models.Country.relation_lookups('users'), [
            {'$lookup': {'from': 'users', 'localField': '_id', 'foreignField': 'countryId', 'as': 'users',
                         'pipeline': [NOT_DELETED]}},
            {'$project': {'users.password': 0}},
        ])

    def test_has_many_through(self):
        self.assertEqual(models.Country.relation_lookups('posts'), [
            {'$lookup': {'from': 'users', 'localField': '_id', 'foreignField': 'countryId', 'as': 'pivot'}},
            {'$lookup': {'from': 'posts', 'localField': 'pivot._id', 'foreignField': 'userId', 'as': 'posts',
                         'pipeline': [NOT_DELETED]}},
            {'$project': {'pivot': 0}},
        ])

    def test_belongs_to_many(self):
        # Default pivot collection: both names, sorted
        self.assertEqual(models.User.relation_lookups('roles'), [
            {'$lookup': {'from': 'role_user', 'localField': '_id', 'foreignField': 'userId', 'as': 'pivot'}},
            {'$lookup': {'from': 'roles', 'localField': 'pivot.roleId', 'foreignField': '_id', 'as': 'roles'}},
            {'$project': {'pivot': 0}},
        ])

        # The other side
        self.assertEqual(models.Role.relation_lookups('users'), [
            {'$lookup': {'from': 'role_user', 'localField': '_id', 'foreignField': 'roleId', 'as': 'pivot'}},
            {'$lookup': {'from': 'users', 'localField': 'pivot.userId', 'foreignField': '_id', 'as': 'users',
                         'pipeline': [NOT_DELETED]}},
            {'$project': {'pivot': 0}},
            {'$project': {'users.password': 0}},
        ])

        # Pivot model with soft delete: detached links are not joined
        self.assertEqual(models.User.relation_lookups('teams')[0], {
            '$lookup': {'from': 'memberships', 'localField': '_id', 'foreignField': 'userId', 'as': 'pivot',
                        'pipeline': [NOT_DELETED]}
        })

    def test_morph(self):
        # === morphTo
        self.assertEqual(models.User.relation_lookups('image'), [
            {'$lookup': {'from': 'images', 'localField': '_id', 'foreignField': 'imageableId', 'as': 'image',
                         'pipeline': [type_match('User', 'imageableType')]}},
            unwind('image'),
        ])

        # === morphMany
        self.assertEqual(models.Post.relation_lookups('comments'), [
            {'$lookup': {'from': 'comments', 'localField': '_id', 'foreignField': 'commentableId', 'as': 'comments',
                         'pipeline': [type_match('Post', 'commentableType')]}},
        ])

        # === morphToMany
        self.assertEqual(models.Post.relation_lookups('tags'), [
            {'$lookup': {'from': 'taggables', 'localField': '_id', 'foreignField': 'taggableId', 'as': 'pivot',
                         'pipeline': [type_match('Post', 'taggableType')]}},
            {'$lookup': {'from': 'tags', 'localField': 'pivot.tagId', 'foreignField': '_id', 'as': 'tags'}},
            {'$project': {'pivot': 0}},
        ])

        # === morphedByMany
        self.assertEqual(models.Tag.relation_lookups('posts'), [
            {'$lookup': {'from': 'taggables', 'localField': '_id', 'foreignField': 'tagId', 'as': 'pivot',
                         'pipeline': [type_match('Post', 'taggableType')]}},
            {'$lookup': {'from': 'posts', 'localField': 'pivot.taggableId', 'foreignField': '_id', 'as': 'posts',
                         'pipeline': [NOT_DELETED]}},
            {'$project': {'pivot': 0}},
        ])

    def test_options(self):
        # === Test: select, exclude, sort, skip, limit
        self.assertEqual(models.User.relation_lookups('posts', {
            'select': ['title'],
            'exclude': 'body',
            'sort': ('title', 'desc'),
            'skip': 1,
            'limit': 2,
        }), [
            {'$lookup': {'from': 'posts', 'localField': '_id', 'foreignField': 'userId', 'as': 'posts',
                         'pipeline': [
                             NOT_DELETED,
                             {'$sort': {'title': -1}},
                             {'$skip': 1},
                             {'$limit': 2},
                         ]}},
            {'$project': {'document': '$$ROOT', 'posts.title': 1}},
            {'$set': {'document.posts': '$posts'}},
            {'$replaceRoot': {'newRoot': '$document'}},
            {'$project': {'posts.body': 0}},
        ])

        # sort by a column name: ascending
        lookups = models.User.relation_lookups('posts', RelationOptions(sort='title'))
        self.assertEqual(lookups[0]['$lookup']['pipeline'], [NOT_DELETED, {'$sort': {'title': 1}}])

        # === Test: singular relations ignore sort, skip and limit
        self.assertEqual(models.User.relation_lookups('phone', {'sort': 'number', 'skip': 1, 'limit': 1}),
                         models.User.relation_lookups('phone'))

        # === Test: hidden fields are excluded, unless made visible
        self.assertEqual(models.Post.relation_lookups('user', {'exclude': ['email']})[-1],
                         {'$project': {'user.password': 0, 'user.email': 0}})
        self.assertEqual(models.Post.relation_lookups('user', {'make_visible': ['password']}), [
            {'$lookup': {'from': 'users', 'localField': 'userId', 'foreignField': '_id', 'as': 'user',
                         'pipeline': [NOT_DELETED]}},
            unwind('user'),
        ])

        # === Test: invalid options
        for options in ({'bogus': 1}, {'limit': -1}, {'skip': 'a'}, 'title',
                        {'sort': ('a', 'b', 'c')}, {'sort': ('a', 'up')}):
            with self.assertRaises(InvalidArgumentException, msg=repr(options)):
                models.User.relation_lookups('posts', options)

    def test_nested(self):
        comments = models.Post.relation_lookups('comments')
        author = models.Comment.relation_lookups('author')

        # === Test: dotted name
        q = models.User.query().with_('posts.comments')
        self.assertEqual(q.state.relations, ['posts'])
        self.assertEqual(q.to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}]}},
            {'$lookup': {'from': 'posts', 'localField': '_id', 'foreignField': 'userId', 'as': 'posts',
                         'pipeline': [NOT_DELETED] + comments}},
        ])

        # === Test: dict
        self.assertEqual(models.User.query().with_({'posts': ['comments']}).to_pipeline(),
                         models.User.query().with_('posts.comments').to_pipeline())
        self.assertEqual(models.User.query().with_({'posts': 'comments'}).to_pipeline(),
                         models.User.query().with_('posts.comments').to_pipeline())

        # === Test: deeper
        lookups = models.User.relation_lookups('posts', None, ['comments.author'])
        comments_lookup = lookups[0]['$lookup']['pipeline'][1]['$lookup']
        self.assertEqual(comments_lookup['pipeline'], [type_match('Post', 'commentableType')] + author)

        # === Test: options go to the top-level relation
        pipeline = models.User.query().with_('posts.comments', {'limit': 5}).to_pipeline()
        self.assertEqual(pipeline[1]['$lookup']['pipeline'], [NOT_DELETED, {'$limit': 5}] + comments)

        # === Test: several relations
        pipeline = models.User.query().with_('phone').with_('posts').to_pipeline()
        self.assertEqual(pipeline[1:], models.User.relation_lookups('phone') + models.User.relation_lookups('posts'))

    def test_unknown_relation(self):
        with self.assertRaises(RelationNotFoundException) as e:
            models.User.query().with_('nope')
        self.assertEqual(e.exception.model, 'User')
        self.assertEqual(e.exception.relation, 'nope')

        with self.assertRaises(RelationNotFoundException) as e:
            models.User.with_('posts.nope')
        self.assertEqual(e.exception.model, 'Post')
        self.assertEqual(e.exception.relation, 'nope')

    def test_default_with(self):
        users = models.Country.relation_lookups('users')
        posts = models.Country.relation_lookups('posts')

        # === Test: default relations are loaded with every query
        q = models.Country.query()
        self.assertEqual(q.to_pipeline(), users)

        # ... and again after a reset
        q.reset()
        self.assertEqual(q.to_pipeline(), users)

        # === Test: an explicit with_() wins over the default
        pipeline = models.Country.query().with_('users', {'limit': 1}).to_pipeline()
        self.assertEqual(pipeline, models.Country.relation_lookups('users', {'limit': 1}))

        # === Test: without(), with_only()
        self.assertEqual(models.Country.without('users').to_pipeline(), [])
        self.assertEqual(models.Country.with_only('posts').to_pipeline(), posts)


class RelationQueryTest(unittest.TestCase):
    """ Test queries for related documents of a loaded model """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.client = install_fake_client(models.CONNECTION)
        self.db = self.client[models.DATABASE]

    def test_conditions(self):
        uid, pid = ObjectId(), ObjectId()
        user = models.User.hydrate({'_id': uid, 'name': 'John'})
        post = models.Post.hydrate({'_id': pid, 'userId': uid})

        # === hasOne
        self.assertEqual(user.phone().to_pipeline(), [
            {'$match': {'$and': [{'userId': {'$eq': uid}}]}},
        ])

        # === hasMany: soft delete of the related model applies; own conditions come first
        self.assertEqual(user.posts().where('title', 'Hello').to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'title': {'$eq': 'Hello'}}, {'userId': {'$eq': uid}}]}},
        ])

        # === belongsTo
        self.assertEqual(post.user().to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'_id': {'$eq': uid}}]}},
        ])

        # === morphTo, morphMany
        self.assertEqual(user.image().to_pipeline(), [
            {'$match': {'$and': [{'imageableId': {'$eq': uid}}, {'imageableType': {'$eq': 'User'}}]}},
        ])
        self.assertEqual(post.comments().to_pipeline(), [
            {'$match': {'$and': [{'commentableId': {'$eq': pid}}, {'commentableType': {'$eq': 'Post'}}]}},
        ])

        # === relation queries load relations, too
        self.assertEqual(user.posts().with_('comments').to_pipeline()[1:], models.Post.relation_lookups('comments'))

    def test_conditions_through_pivot(self):
        uid, cid, pid, tid = ObjectId(), ObjectId(), ObjectId(), ObjectId()
        r1, r2, r3 = ObjectId(), ObjectId(), ObjectId()
        t1, t2 = ObjectId(), ObjectId()
        u1, u2 = ObjectId(), ObjectId()

        # === belongsToMany: related ids are loaded from the pivot
        self.db['role_user'].documents = [
            {'_id': ObjectId(), 'userId': uid, 'roleId': r1},
            {'_id': ObjectId(), 'userId': uid, 'roleId': r2},
            {'_id': ObjectId(), 'userId': ObjectId(), 'roleId': r3},
        ]
        user = models.User.hydrate({'_id': uid})
        self.assertEqual(user.roles().to_pipeline(), [
            {'$match': {'$and': [{'_id': {'$in': [r1, r2]}}]}},
        ])

        # === hasManyThrough: intermediate ids are loaded first, trashed ones included
        self.db['users'].documents = [
            {'_id': u1, 'countryId': cid, 'isDeleted': False},
            {'_id': u2, 'countryId': cid, 'isDeleted': True},
            {'_id': uid, 'countryId': ObjectId(), 'isDeleted': False},
        ]
        country = models.Country.hydrate({'_id': cid})
        self.assertEqual(country.posts().to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'userId': {'$in': [u1, u2]}}]}},
        ])

        # === morphToMany: pivot documents of this type only
        self.db['taggables'].documents = [
            {'_id': ObjectId(), 'taggableId': pid, 'taggableType': 'Post', 'tagId': t1},
            {'_id': ObjectId(), 'taggableId': pid, 'taggableType': 'User', 'tagId': t2},
        ]
        post = models.Post.hydrate({'_id': pid})
        self.assertEqual(post.tags().to_pipeline(), [
            {'$match': {'$and': [{'_id': {'$in': [t1]}}]}},
        ])

        # === morphedByMany
        self.db['taggables'].documents = [
            {'_id': ObjectId(), 'tagId': tid, 'taggableType': 'Post', 'taggableId': pid},
            {'_id': ObjectId(), 'tagId': tid, 'taggableType': 'User', 'taggableId': uid},
        ]
        tag = models.Tag.hydrate({'_id': tid})
        self.assertEqual(tag.posts().to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'_id': {'$in': [pid]}}]}},
        ])
        self.assertEqual(tag.users().to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'_id': {'$in': [uid]}}]}},
        ])

    def test_reads(self):
        uid = ObjectId()
        self.db['posts'].documents = [
            {'_id': ObjectId(), 'userId': uid, 'title': 'a', 'isDeleted': False},
            {'_id': ObjectId(), 'userId': uid, 'title': 'b', 'isDeleted': True},
            {'_id': ObjectId(), 'userId': ObjectId(), 'title': 'c', 'isDeleted': False},
        ]
        user = models.User.hydrate({'_id': uid})

        posts = user.posts().get()
        self.assertEqual([post.title for post in posts], ['a'])
        self.assertIsInstance(posts[0], models.Post)

        self.assertEqual(sorted(user.posts().with_trashed().pluck('title')), ['a', 'b'])
        self.assertEqual(user.posts().count(), 1)

        # The same relation query can be used again: conditions are not duplicated
        q = user.posts()
        self.assertEqual(q.count(), 1)
        self.assertEqual(q.count(), 1)
        self.assertEqual(q.to_pipeline(), [
            {'$match': {'$and': [{'isDeleted': False}, {'userId': {'$eq': uid}}]}},
        ])

    def test_create_related(self):
        uid, pid = ObjectId(), ObjectId()
        user = models.User.hydrate({'_id': uid})
        post = models.Post.hydrate({'_id': pid})

        # === hasMany: create()
        created = user.posts().create({'title': 'Hello'})
        self.assertIsInstance(created, models.Post)
        self.assertEqual(created.userId, uid)
        self.assertIs(created.isDeleted, False)
        self.assertEqual(self.db['posts'].documents[0]['userId'], uid)

        # create_many()
        ids = user.posts().create_many([{'title': 'a'}, {'title': 'b'}])
        self.assertEqual(len(ids), 2)
        self.assertEqual([doc['userId'] for doc in self.db['posts'].documents], [uid] * 3)

        # save()
        new = models.Post({'title': 'saved'})
        user.posts().save(new)
        self.assertTrue(new.exists)
        self.assertEqual(new.userId, uid)
        self.assertEqual(len(self.db['posts'].documents), 4)

        # first_or_create(): found
        found = user.posts().first_or_create({'title': 'Hello'})
        self.assertEqual(found.get_key(), created.get_key())
        self.assertEqual(len(self.db['posts'].documents), 4)

        # first_or_new(): not found, not saved
        fresh = user.posts().first_or_new({'title': 'Nope'})
        self.assertFalse(fresh.exists)
        self.assertEqual(fresh.to_dict(), {'title': 'Nope', 'userId': uid})

        # === morphMany: both the id and the type
        comment = post.comments().create({'body': 'Nice'})
        self.assertEqual(comment.to_dict(), {
            '_id': comment.get_key(),
            'body': 'Nice',
            'commentableId': pid,
            'commentableType': 'Post',
        })

    def test_unsaved_parent(self):
        """ A parent without keys has no related documents to query """
        self.db['posts'].insert_one({'title': 'Orphan', 'userId': None, 'isDeleted': False})
        user = models.User({'name': 'John'})
        post = models.Post({'title': 'Hello'})

        for parent, name in ((user, 'posts'), (user, 'phone'), (user, 'roles'), (user, 'tags'), (user, 'image'),
                             (post, 'user')):
            with self.assertRaises(InvalidArgumentException, msg=name):
                getattr(parent, name)().get()

        # Nothing was created for it either
        with self.assertRaises(InvalidArgumentException):
            user.posts().create({'title': 'Hi'})
        with self.assertRaises(InvalidArgumentException):
            user.roles().attach(ObjectId())
        self.assertEqual(len(self.db['posts'].documents), 1)

        # The state is reset
        q = user.posts()
        with self.assertRaises(InvalidArgumentException):
            q.where('title', 'Orphan').get()
        self.assertTrue(q.state.is_empty)

    def test_associate(self):
        user = models.User.create({'name': 'John'})
        post = models.Post.create({'title': 'Hello'})

        # === Test: associate() a model
        post.user().associate(user)
        self.assertEqual(post.userId, user.get_key())
        self.assertFalse(post.is_dirty())
        self.assertEqual(self.db['posts'].documents[0]['userId'], user.get_key())

        # === Test: associate() an id
        other = ObjectId()
        post.user().associate(str(other))
        self.assertEqual(self.db['posts'].documents[0]['userId'], other)

        # === Test: dissociate()
        post.user().dissociate()
        self.assertIsNone(post.userId)
        self.assertIsNone(self.db['posts'].documents[0]['userId'])
