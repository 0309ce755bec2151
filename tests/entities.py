"""Entity types shared by the test suite."""

from relorm import Entity, register


@register
class UserModel(Entity):
    __table__ = "user"
    __label__ = "User"
    __columns__ = ("id", "name", "age", "avatar")

    @classmethod
    def define(cls, meta):
        meta.add_rule("name", "Name", "notEmpty")
        meta.add_rule("age", "Age", "between(1,120)")

        meta.has_one("address", "AddressModel")
        meta.has_many("addresses", "AddressModel")
        meta.has_many(
            "home_addresses",
            "AddressModel",
            conditions=lambda query: query.where("addr", "LIKE", "home%"),
        )


@register
class AddressModel(Entity):
    __columns__ = ("id", "user_id", "addr", "tel")

    @classmethod
    def define(cls, meta):
        meta.add_rule("user_id", "User", "notEmpty")
        meta.add_rule("addr", "Address", "notEmpty")
        meta.add_rule("tel", "Phone", "notEmpty && digit")

        meta.belongs_to("user", UserModel, "user_id")


@register
class PostModel(Entity):
    __columns__ = ("id", "title")

    @classmethod
    def define(cls, meta):
        meta.add_rule("title", "Title", "notEmpty")
        meta.has_many("comments", "CommentModel", cascade=True)


@register
class CommentModel(Entity):
    __columns__ = ("id", "post_id", "parent_id", "body")

    @classmethod
    def define(cls, meta):
        meta.belongs_to("post", PostModel)
        meta.belongs_to("parent", "CommentModel", "parent_id")
        meta.has_many("replies", "CommentModel", "parent_id", cascade=True)


def make_user(name="shi", age=12, **values):
    user = UserModel(name=name, age=age, **values)
    user.create()
    return user


def make_address(user, addr="nanning", tel="110"):
    address = AddressModel(addr=addr, tel=tel)
    address.user = user
    address.create()
    return address
