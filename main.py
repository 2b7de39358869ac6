import logging
import sys

from rich.pretty import pprint

from pipewright import *


class GetSize(Command):
    Name = Parameter(str, Member(mandatory=True, by_property_name=True), aliases=("FullName",))
    Length = Parameter(int, Member(by_property_name=True), default=0)
    Unit = Parameter(str, attributes=(ValidateSet("B", "KB"),), default="B")

    def process(self):
        size = self.Length if self.Unit == "B" else self.Length / 1024
        self.write({"Name": self.Name, "Size": size})


@command(name="Format-Size")
def format_size(Record=Parameter(dict, Member(mandatory=True, pipeline=True)), *, Digits: int = 1):
    return f"{Record['Name']}: {Record['Size']:.{Digits}f}"


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    pipeline = Pipeline(
        (GetSize, ["-Unit", "KB"]),
        (format_size, ["-Digits", "2"]),
        context=ExecutionContext(shell=True),
    )
    pprint(pipeline.invoke([
        {"FullName": "a.txt", "Length": 2048},
        {"Length": 10},
        Envelope({"Name": "b.bin", "Length": "4096"}, untrusted=True),
    ]))
    pprint(GetSize)
