# switchnet

switchnet simulates a small network on one machine. A load balancer reads
commands from the console and starts switches and systems as separate
processes. They talk to each other over anonymous pipes, and each one reports
back to the load balancer through a named FIFO. Systems can send files to each
other through the switches. When a link between switches closes a loop, a
breadth-first spanning tree is built and one edge of the loop is dropped.

It runs on POSIX systems only, since it relies on pipes and named FIFOs.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Running

Start the console from the directory you want to work in:

```
switchnet
```

The console prints `Welcome!` and then prompts `Enter your command:` before
each line. It stops on `exit` or at the end of its input; end of input is
treated as `exit`.

Each switch and system runs as a child process, started with the same Python
interpreter as `python -m switchnet.switch` or `python -m switchnet.system`.
Each one reports to the console through a named FIFO at
`./namedPipe/fifo_<pid>`; the `./namedPipe` directory is created when the
console starts. Files received by a system are written to `./Test_Files/`,
which is created when the first file arrives.

## Commands

| Command | What it does |
| --- | --- |
| `Switch <ports> <name>` | Start a switch with the given number of ports. |
| `System <name>` | Start a system. |
| `Connect <system> <switch>` | Attach a system to a free port of a switch. |
| `Connect_S <switch> <switch>` | Join two switches. If this closes a loop, a spanning tree is built from the first switch and the first link not in it is removed. |
| `Send <source> <destination> <file>` | The source system reads the file and sends it, in chunks one second apart, to the destination system. |
| `Recv <source> <destination> <file>` | The source system asks the destination system to send it the file. |
| `exit` | Tell every switch and system to stop, then wait for them and leave. |

Names are shared between switches and systems, so each name may be used only
once (`Duplicate name!`). A command with the wrong number of fields or unknown
names is rejected with `Bad request!`; `Send` and `Recv` with an unknown system
give `Wrong source or destination!`. Anything else prints `Invalid command!`.

A switch refuses a connection once all its ports are in use
(`There is no free port on this switch!`).

Switches learn on which port each system lives from the messages they see;
until a destination is known, a switch floods the message to every other port.
A received file is written to `./Test_Files/<file>`: the first chunk replaces
any existing file, later chunks are appended, each followed by a newline.

## Example session

```
Switch 4 s1
Switch 4 s2
System a
System b
Connect a s1
Connect b s2
Connect_S s1 s2
Send a b notes.txt
exit
```

After this, `./Test_Files/notes.txt` holds the file as system `b` received it.

## Using it from Python

- `switchnet.loadbalancer.SwitchTopology` keeps the switch adjacency matrix:
  `add_switch`, `connect`, `disconnect`, `will_cause_loops` (whether a new
  edge would close a loop), `spanning_tree` (breadth-first, as a matrix),
  `first_extra_edge` and `format_matrix`.
- `switchnet.loadbalancer.LoadBalancer` is the console itself; it is a
  context manager, and `handle_command` takes one command line, while
  `read_input` reads lines from any text stream.
- `switchnet.switch.Switch` and `switchnet.system.System` are the component
  processes' logic, driven by file descriptors.
- `switchnet.tools` holds small helpers such as `split_space`,
  `get_named_fifo_name`, `read_nonblocking` and `write_fifo`.