import os


#: Environment variables Settings.from_env() looks at
ENV_DATABASE_URI = 'MONGOLOQUENT_DATABASE_URI'
ENV_DATABASE_NAME = 'MONGOLOQUENT_DATABASE_NAME'
ENV_TIMEZONE = 'MONGOLOQUENT_TIMEZONE'
ENV_TESTING = 'MONGOLOQUENT_TESTING'


class Settings(dict):
    """ Mongoloquent settings container.

        Every QueryBuilder is initialized with one of these. It's a plain dict,
        but its __init__() documents every key, which is nice for autocompletion.

        Where do the values come from?

        * Settings.from_env() gives the defaults: connection string and database name
          are read from the environment
        * A Model can override any key with a class attribute of the same name:

            class User(Model):
                collection = 'users'
                use_soft_delete = True

        * DB.collection() and QueryBuilder() accept the same keys as keyword arguments
    """

    def __init__(self,
                 # --- connection
                 connection: str = 'mongodb://localhost:27017',
                 database_name: str = 'mongoloquent',
                 collection: str = None,
                 # --- time
                 timezone: str = 'UTC',
                 use_timestamps: bool = True,
                 created_at: str = 'createdAt',
                 updated_at: str = 'updatedAt',
                 # --- soft delete
                 use_soft_delete: bool = False,
                 is_deleted: str = 'isDeleted',
                 deleted_at: str = 'deletedAt',
                 ):
        """ Init the settings

        :param connection: MongoDB connection string. Clients are cached per connection string.
        :param database_name: Name of the database to work with
        :param collection: Name of the collection to work with.
            Models default to lower-cased class name + "s"
        :param timezone: Name of the timezone for timestamps, e.g. "Asia/Jakarta"
        :param use_timestamps: Put `created_at` and `updated_at` fields onto inserted documents,
            and refresh `updated_at` on every update.
        :param created_at: Name of the field for the creation timestamp
        :param updated_at: Name of the field for the modification timestamp
        :param use_soft_delete: Do not really delete documents, but flag them with `is_deleted`.
            Flagged documents are invisible, unless with_trashed() or only_trashed() is used.
        :param is_deleted: Name of the soft-delete flag field
        :param deleted_at: Name of the soft-delete timestamp field
        """
        super(Settings, self).__init__(
            connection=connection,
            database_name=database_name,
            collection=collection,
            timezone=timezone,
            use_timestamps=use_timestamps,
            created_at=created_at,
            updated_at=updated_at,
            use_soft_delete=use_soft_delete,
            is_deleted=is_deleted,
            deleted_at=deleted_at,
        )

    @classmethod
    def from_env(cls, environ=None, **settings):
        """ Initialize settings from environment variables

        :param environ: The environment to read; defaults to os.environ
        :param settings: Overrides
        :rtype: Settings
        """
        if environ is None:
            environ = os.environ

        database_name = environ.get(ENV_DATABASE_NAME, 'mongoloquent')
        if environ.get(ENV_TESTING, '').lower() in ('1', 'true', 'yes', 'on'):
            database_name += '_test'

        defaults = dict(
            connection=environ.get(ENV_DATABASE_URI, 'mongodb://localhost:27017'),
            database_name=database_name,
            timezone=environ.get(ENV_TIMEZONE, 'UTC'),
        )
        defaults.update(settings)
        return cls(**defaults)

    def and_more(self, **settings):
        """ Make a copy of these settings, with some keys overridden

        :rtype: Settings
        """
        new = self.__class__(**self)
        new.update({k: v for k, v in settings.items() if v is not None})
        return new
