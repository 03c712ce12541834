"""
sqldump: print the rows of an SQLite table as CSV.

    python main.py connect shop.db export -select "id,name" -filter "price > 10" products
    python main.py help connect
    python main.py -version
"""
import csv
import sqlite3
import sys

from rich.console import Console

from flagtree import *
from flagtree import flags

__prog__ = "sqldump"
__version__ = "0.1.0"


class MissingArgumentError(CommandException):
    title = "missing argument"


class Connect:
    """
    Initializer of the "connect" command; the opened connection is kept for "export".
    """

    def __init__(self):
        self.connection = None

    def register(self, flagset):
        readonly = flagset.boolean("readonly", False, "open the database read-only")

        def handler(*args):
            if not args:
                raise MissingArgumentError("connect needs a database file", hint="sqldump connect <database> ...")
            if readonly.value:
                self.connection = sqlite3.connect("file:%s?mode=ro" % args[0], uri=True)
            else:
                self.connection = sqlite3.connect(args[0])
            return 1
        return handler


def export(session):
    def init(flagset):
        output = flagset.string("o", "", "write the rows to `file` instead of the standard output")
        select = flagset.string("select", "*", "comma-separated `columns` to export")
        where = flagset.string("filter", "", "SQL `expression` the rows must satisfy")
        header = flagset.boolean("header", True, "print the column names first")

        def handler(*args):
            if not args:
                raise MissingArgumentError("export needs a table name", hint="sqldump connect <database> export <table>")
            query = "SELECT %s FROM \"%s\"" % (select.value, args[0].replace('"', '""'))
            if where.value:
                query += " WHERE %s" % where.value
            cursor = session.connection.execute(query)

            stream = open(output.value, "w", newline="") if output.value else sys.stdout
            try:
                writer = csv.writer(stream)
                if header.value:
                    writer.writerow(column[0] for column in cursor.description)
                writer.writerows(cursor)
            finally:
                if stream is not sys.stdout:
                    stream.close()
            return 1
        return handler
    return init


def main():
    flags.boolean(VERSION_FLAG, False, "print the version and exit")
    flags.boolean(FULL_VERSION_FLAG, False, "print the version with the dependencies and exit")

    cli = new(required=True)
    cli.add_help()

    session = Connect()
    connect = cli.must_add(Application(
        "connect",
        "open an SQLite database",
        "<database>",
        "connect opens the database file; the commands following it run against it.",
        ErrorPolicy.EXIT,
        session,
    ))
    connect.add_help()
    connect.must_add(Application(
        "export",
        "print the rows of a table as CSV",
        "[-o file] [-select columns] [-filter expression] <table>",
        "export runs SELECT <columns> FROM <table> [WHERE <expression>].",
        ErrorPolicy.EXIT,
        export(session),
    ))

    try:
        invoke(cli)
    except CommandException as fault:
        trigger(fault, policy=ErrorPolicy.EXIT)
    except sqlite3.Error as error:
        Console(file=sys.stderr, markup=False, highlight=False).print("sqlite: %s" % error)
        sys.exit(1)
    finally:
        if session.connection is not None:
            session.connection.close()


if __name__ == '__main__':
    main()
